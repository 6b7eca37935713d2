"""
Unit tests for the access guard.
"""

import asyncio

from hms_console.guard import ProtectedRoute, evaluate_access, evaluate_route
from hms_console.models import AuthState, CurrentSession, GuardDecision, Role
from hms_console.session_store import SessionStore

from fakes import FakeBackend, make_session, profile_row


SESSION = make_session("u-1")


# ── Tests: evaluate_access ───────────────────────────────────────────

def test_loading_is_pending_regardless_of_inputs():
    result = evaluate_access(None, None, True, (Role.ADMIN,))
    assert result.decision is GuardDecision.PENDING
    assert result.redirect_to is None


def test_no_session_redirects_to_login():
    result = evaluate_access(None, Role.ADMIN, False, ())
    assert result.decision is GuardDecision.DENY
    assert result.redirect_to == "/login"


def test_role_not_allowed_redirects_to_login():
    result = evaluate_access(SESSION, Role.NURSE, False, (Role.ADMIN,))
    assert result.decision is GuardDecision.DENY
    assert result.redirect_to == "/login"


def test_allowed_role_and_empty_list_allow():
    assert evaluate_access(SESSION, Role.ADMIN, False, (Role.ADMIN,)).allowed
    assert evaluate_access(SESSION, Role.PATIENT, False, ()).allowed


def test_no_role_only_passes_open_routes():
    assert evaluate_access(SESSION, None, False, ()).allowed
    assert not evaluate_access(SESSION, None, False, (Role.ADMIN, Role.PATIENT)).allowed


# ── Tests: evaluate_route ────────────────────────────────────────────

def test_route_registry_drives_decision():
    doctor = CurrentSession(AuthState.AUTHENTICATED, SESSION, Role.DOCTOR)
    assert evaluate_route(doctor, "/patients").allowed
    assert not evaluate_route(doctor, "/billing").allowed


def test_unregistered_route_is_denied():
    admin = CurrentSession(AuthState.AUTHENTICATED, SESSION, Role.ADMIN)
    assert evaluate_route(admin, "/nowhere").decision is GuardDecision.DENY


def test_patient_cannot_open_dashboard_route():
    patient = CurrentSession(AuthState.AUTHENTICATED, SESSION, Role.PATIENT)
    assert not evaluate_route(patient, "/").allowed
    assert evaluate_route(patient, "/billing").allowed


# ── Tests: ProtectedRoute ────────────────────────────────────────────

def test_protected_route_waits_for_role():
    async def scenario():
        backend = FakeBackend(session=SESSION, profiles={"u-1": profile_row("u-1", "doctor")})
        backend.gates["profile"] = asyncio.Event()
        store = SessionStore(backend)

        init = asyncio.ensure_future(store.initialize())
        await asyncio.sleep(0)
        route = ProtectedRoute(store, "/patients")
        assert route.check().decision is GuardDecision.PENDING

        waiting = asyncio.ensure_future(route.resolve())
        await asyncio.sleep(0)
        backend.gates["profile"].set()
        await init
        result = await waiting
        route.close()
        return result

    assert asyncio.run(scenario()).allowed


def test_closed_route_discards_pending_result():
    async def scenario():
        backend = FakeBackend(session=SESSION, profiles={"u-1": profile_row("u-1", "admin")})
        backend.gates["profile"] = asyncio.Event()
        store = SessionStore(backend)

        init = asyncio.ensure_future(store.initialize())
        await asyncio.sleep(0)
        route = ProtectedRoute(store, "/doctors")
        waiting = asyncio.ensure_future(route.resolve())
        await asyncio.sleep(0)

        route.close()
        backend.gates["profile"].set()
        await init
        return await waiting, store.current_role

    result, role = asyncio.run(scenario())
    assert result is None
    assert role is Role.ADMIN
