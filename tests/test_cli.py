"""
Tests for the interactive console with scripted answers.
"""

import asyncio

import pytest

from hms_console import cli
from hms_console.backend import SqlBackend, init_engine
from hms_console.demo_data import DEMO_PASSWORD, seed_demo_data


@pytest.fixture(scope="module")
def backend(tmp_path_factory):
    path = tmp_path_factory.mktemp("cli") / "hms.db"
    sql = SqlBackend(init_engine(f"sqlite:///{path}"))
    seed_demo_data(sql)
    return sql


def script(monkeypatch, answers):
    answers = list(answers)

    async def fake_ask(text, secret=False):
        if not answers:
            raise EOFError
        return answers.pop(0)

    monkeypatch.setattr(cli, "ask", fake_ask)


def test_admin_session_shows_dashboard_and_signs_out(backend, monkeypatch, capsys):
    script(monkeypatch, ["login", "admin@hms.local", DEMO_PASSWORD, "o", "quit"])
    asyncio.run(cli.run_console(backend))
    out = capsys.readouterr().out
    assert "Logged in as: admin@hms.local (role=admin)" in out
    assert "=== Dashboard (admin) ===" in out
    assert "Total Patients" in out
    assert "User Management" in out
    assert "[auth] Signed out." in out
    assert "Goodbye." in out


def test_patient_is_redirected_from_dashboard(backend, monkeypatch, capsys):
    script(monkeypatch, ["login", "patient@hms.local", DEMO_PASSWORD, "/doctors", "quit", "q"])
    asyncio.run(cli.run_console(backend))
    out = capsys.readouterr().out
    assert "Access to / denied – redirecting to /login" in out
    assert "Access to /doctors denied" in out
    assert "My Bills" in out


def test_bad_password_reports_error(backend, monkeypatch, capsys):
    script(monkeypatch, ["login", "nurse@hms.local", "nope", "quit"])
    asyncio.run(cli.run_console(backend))
    out = capsys.readouterr().out
    assert "[ERROR] Login failed." in out
    assert "Goodbye." in out


def test_render_snapshot_without_counters(capsys):
    cli.render_snapshot(cli.DashboardSnapshot(role=None))
    out = capsys.readouterr().out
    assert "(no statistics for this role)" in out
    assert "No new notifications" in out
