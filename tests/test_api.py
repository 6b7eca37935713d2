"""
Tests for the Flask API using the test client over a seeded SQLite database.
"""

import threading
import time
from datetime import datetime, timedelta

import pytest

from hms_console.api import auth as api_auth
from hms_console.api.app import create_app
from hms_console.backend import SqlBackend, init_engine
from hms_console.demo_data import DEMO_PASSWORD, seed_demo_data


@pytest.fixture(scope="module")
def backend(tmp_path_factory):
    path = tmp_path_factory.mktemp("api") / "hms.db"
    sql = SqlBackend(init_engine(f"sqlite:///{path}"), secret_key="test-secret")
    seed_demo_data(sql)
    return sql


@pytest.fixture
def client(backend):
    api_auth.sessions.clear()
    app = create_app(backend)
    app.config["TESTING"] = True
    with app.test_client() as c:
        yield c
    api_auth.sessions.clear()


def login(client, email, password=DEMO_PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password})


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


# ── Tests: info ──────────────────────────────────────────────────────

def test_index_and_health(client):
    assert client.get("/").status_code == 200
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["checks"]["database"] is True


# ── Tests: auth ──────────────────────────────────────────────────────

def test_login_invalid_credentials(client):
    resp = login(client, "admin@hms.local", "wrong")
    assert resp.status_code == 401
    assert api_auth.sessions == {}


def test_login_requires_json_fields(client):
    assert client.post("/api/auth/login", data="x").status_code == 400
    assert client.post("/api/auth/login", json={"email": "a"}).status_code == 400


def test_login_returns_role_and_navigation(client):
    resp = login(client, "doctor@hms.local")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["role"] == "doctor"
    assert data["state"] == "authenticated"
    routes = [item["route"] for item in data["navigation"]]
    assert routes[0] == "/"
    assert "/prescriptions" in routes
    assert "/doctors" not in routes
    assert data["token"] in api_auth.sessions


def test_missing_or_unknown_token(client):
    assert client.get("/api/session").status_code == 401
    assert client.get("/api/session", headers=bearer("nope")).status_code == 401


def test_logout_drops_session(client):
    token = login(client, "nurse@hms.local").get_json()["token"]
    resp = client.post("/api/auth/logout", headers=bearer(token))
    assert resp.status_code == 200
    assert resp.get_json()["next"] == "/login"
    assert client.get("/api/session", headers=bearer(token)).status_code == 401


def test_signup_then_login(client):
    resp = client.post("/api/auth/signup", json={
        "email": "newnurse@hms.local", "password": "pw12345",
        "role": "nurse", "first_name": "New", "last_name": "Nurse",
    })
    assert resp.status_code == 201
    assert api_auth.sessions == {}

    again = client.post("/api/auth/signup", json={
        "email": "newnurse@hms.local", "password": "pw12345", "role": "nurse",
    })
    assert again.status_code == 400

    data = login(client, "newnurse@hms.local", "pw12345").get_json()
    assert data["role"] == "nurse"
    assert data["user"]["first_name"] == "New"


def test_signup_rejects_unknown_role(client):
    resp = client.post("/api/auth/signup", json={
        "email": "x@hms.local", "password": "pw", "role": "janitor",
    })
    assert resp.status_code == 400


# ── Tests: access / dashboard ────────────────────────────────────────

def test_access_endpoint_reports_guard_decision(client):
    token = login(client, "pharmacist@hms.local").get_json()["token"]
    allowed = client.get("/api/access?route=/inventory", headers=bearer(token)).get_json()
    denied = client.get("/api/access?route=/doctors", headers=bearer(token)).get_json()
    assert allowed["allowed"] is True
    assert denied["decision"] == "deny"
    assert denied["redirect_to"] == "/login"


def test_admin_dashboard(client):
    token = login(client, "admin@hms.local").get_json()["token"]
    resp = client.get("/api/dashboard", headers=bearer(token))
    assert resp.status_code == 200
    stats = resp.get_json()["stats"]
    assert set(stats) == {
        "total_patients", "total_appointments", "pending_tests",
        "unpaid_bills", "low_stock", "recent_notifications",
    }
    assert len(stats["recent_notifications"]) <= 5


def test_patient_dashboard_redirects_to_login(client):
    token = login(client, "patient@hms.local").get_json()["token"]
    resp = client.get("/api/dashboard", headers=bearer(token))
    assert resp.status_code == 403
    assert resp.get_json()["redirect_to"] == "/login"
    nav = client.get("/api/navigation", headers=bearer(token)).get_json()
    assert [i["route"] for i in nav["items"]] == [
        "/", "/appointments", "/records", "/billing", "/prescriptions",
    ]


def test_cleanup_expired_sessions(client):
    token = login(client, "lab@hms.local").get_json()["token"]
    api_auth.sessions[token]["last_activity"] = datetime.utcnow() - timedelta(days=30)
    assert api_auth.cleanup_expired_sessions() == 1
    assert token not in api_auth.sessions


def test_concurrent_requests_on_one_token_see_settled_state(client, backend, monkeypatch):
    token = login(client, "admin@hms.local").get_json()["token"]
    original = SqlBackend.query_one

    def slow_query_one(self, table_name, equals):
        if table_name == "user_profiles":
            time.sleep(0.3)
        return original(self, table_name, equals)

    monkeypatch.setattr(SqlBackend, "query_one", slow_query_one)
    app = client.application
    results = {}

    def fetch_dashboard():
        with app.test_client() as other:
            resp = other.get("/api/dashboard", headers=bearer(token))
            results["dashboard"] = (resp.status_code, resp.get_json())

    worker = threading.Thread(target=fetch_dashboard)
    worker.start()
    time.sleep(0.1)
    session_resp = client.get("/api/session", headers=bearer(token))
    worker.join(timeout=10)

    assert session_resp.status_code == 200
    assert session_resp.get_json()["state"] == "authenticated"
    status, body = results["dashboard"]
    assert status == 200, body
    assert body["role"] == "admin"
