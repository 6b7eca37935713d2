"""
Tests for the SQL backend against a temporary SQLite database.
"""

import asyncio
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select
from werkzeug.security import check_password_hash

from hms_console.backend import (
    SqlBackend,
    generate_token,
    init_engine,
    users,
    verify_token,
)
from hms_console.dashboard import DashboardAggregator
from hms_console.demo_data import DEMO_PASSWORD, seed_demo_data
from hms_console.errors import AuthError, QueryError
from hms_console.models import AuthState, Role
from hms_console.session_store import SessionStore


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def backend(tmp_path):
    engine = init_engine(f"sqlite:///{tmp_path / 'hms.db'}")
    sql = SqlBackend(engine, secret_key="test-secret")
    sql.create_schema()
    return sql


# ── Tests: passwords / tokens ────────────────────────────────────────

def test_stored_password_is_salted_werkzeug_hash(backend):
    backend.create_identity("a@hms.local", "s3cret")
    backend.create_identity("b@hms.local", "s3cret")
    with backend.engine.connect() as conn:
        first, second = conn.execute(
            select(users.c.password_hash).order_by(users.c.email)
        ).scalars().all()
    assert first != "s3cret"
    assert first != second
    assert check_password_hash(first, "s3cret")
    assert not check_password_hash(first, "other")


def test_token_carries_subject_and_expiry():
    session = generate_token("u-1", "a@hms.local", secret_key="k", expiry_hours=1)
    payload = verify_token(session.access_token, secret_key="k")
    assert payload["sub"] == "u-1"
    assert session.expires_at - session.issued_at == timedelta(hours=1)
    assert verify_token(session.access_token, secret_key="wrong") is None


def test_expired_token_is_rejected():
    session = generate_token("u-1", "a@hms.local", secret_key="k", expiry_hours=-1)
    assert verify_token(session.access_token, secret_key="k") is None
    assert session.is_expired()


# ── Tests: identities ────────────────────────────────────────────────

def test_authenticate_and_duplicate_identity(backend):
    client = backend.client()
    identity = run(client.create_identity("A@hms.local ", "pw", {"first_name": "A"}))
    assert identity.email == "a@hms.local"

    session = run(client.authenticate("a@hms.local", "pw"))
    assert session.user_id == identity.user_id
    assert run(client.get_current_session()) == session

    with pytest.raises(AuthError):
        run(client.create_identity("a@hms.local", "pw2", {}))
    with pytest.raises(AuthError):
        run(backend.client().authenticate("a@hms.local", "bad"))
    with pytest.raises(AuthError):
        run(backend.client().authenticate("nobody@hms.local", "pw"))


def test_expired_session_fires_change_callback(tmp_path):
    engine = init_engine(f"sqlite:///{tmp_path / 'exp.db'}")
    backend = SqlBackend(engine, secret_key="k", token_expiry_hours=-1)
    backend.create_schema()
    backend.create_identity("a@hms.local", "pw")

    events = []

    async def on_change(session):
        events.append(session)

    async def scenario():
        client = backend.client()
        client.subscribe_session_changes(on_change)
        await client.authenticate("a@hms.local", "pw")
        return await client.get_current_session()

    assert run(scenario()) is None
    assert events[0] is not None
    assert events[-1] is None


def test_invalidate_session_notifies_subscribers(backend):
    backend.create_identity("a@hms.local", "pw")
    events = []

    async def on_change(session):
        events.append(session)

    async def scenario():
        client = backend.client()
        unsubscribe = client.subscribe_session_changes(on_change)
        await client.authenticate("a@hms.local", "pw")
        await client.invalidate_session()
        unsubscribe()
        await client.authenticate("a@hms.local", "pw")

    run(scenario())
    assert len(events) == 2
    assert events[1] is None


# ── Tests: queries ───────────────────────────────────────────────────

def test_count_where_with_filters_and_column_comparison(backend):
    for qty, level in [(1, 5), (10, 5), (5, 5), (0, 2)]:
        backend.insert_row("inventory", {"name": "x", "quantity": qty, "reorder_level": level})
    for status in ["pending", "pending", "paid"]:
        backend.insert_row("bills", {"amount": 10.0, "status": status})

    client = backend.client()
    assert run(client.count_where("inventory", {}, below=("quantity", "reorder_level"))) == 2
    assert run(client.count_where("bills", {"status": "pending"})) == 2
    assert run(client.count_where("bills")) == 3


def test_query_many_orders_and_limits(backend):
    base = datetime(2024, 5, 1)
    for i in range(7):
        backend.insert_row("notifications", {
            "user_id": "u-1", "title": f"t{i}", "message": "m",
            "created_at": base + timedelta(hours=i), "read": i == 6,
        })
    rows = run(backend.client().query_many(
        "notifications", {"user_id": "u-1", "read": False},
        order_by="created_at", descending=True, limit=3,
    ))
    assert [r["title"] for r in rows] == ["t5", "t4", "t3"]


def test_unknown_table_or_column_raises_query_error(backend):
    client = backend.client()
    with pytest.raises(QueryError):
        run(client.count_where("spaceships"))
    with pytest.raises(QueryError):
        run(client.query_one("patients", {"colour": "red"}))


def test_insert_row_returns_stored_row(backend):
    row = run(backend.client().insert_row("patients", {"first_name": "Ann", "last_name": "Lee"}))
    assert row["id"] == 1
    assert row["first_name"] == "Ann"


# ── Tests: end to end over demo data ─────────────────────────────────

def test_admin_dashboard_matches_seeded_counts(backend):
    seed_demo_data(backend)

    async def scenario():
        client = backend.client()
        store = SessionStore(client)
        await store.initialize()
        current = await store.sign_in("admin@hms.local", DEMO_PASSWORD)
        snapshot = await DashboardAggregator(client).compute(current.role, current.session)
        return current, snapshot

    current, snapshot = run(scenario())
    assert current.state is AuthState.AUTHENTICATED
    assert current.role is Role.ADMIN
    assert snapshot.counters["total_patients"] == backend.count_where("patients")
    assert snapshot.counters["unpaid_bills"] == backend.count_where("bills", {"status": "pending"})
    assert snapshot.counters["low_stock"] == backend.count_where(
        "inventory", below=("quantity", "reorder_level"))
    assert len(snapshot.recent_notifications) <= 5
    assert all(not n.read and n.user_id == current.session.user_id
               for n in snapshot.recent_notifications)
    times = [n.created_at for n in snapshot.recent_notifications]
    assert times == sorted(times, reverse=True)


def test_seed_is_idempotent_for_accounts(backend):
    first = seed_demo_data(backend)
    second = seed_demo_data(backend)
    assert first == second
    assert backend.count_where("user_profiles") == len(Role)
