"""
Flask route handlers for the REST API.
"""

import logging
import traceback

from flask import jsonify, request

from hms_console.api.auth import (
    cleanup_expired_sessions,
    drop_session,
    new_client_entry,
    sessions,
    token_required,
)
from hms_console.config import DASHBOARD_ROUTE, LOGIN_ROUTE
from hms_console.errors import AuthError, ProfileError
from hms_console.guard import evaluate_route
from hms_console.models import CurrentSession
from hms_console.rbac import capabilities_for

logger = logging.getLogger(__name__)


def session_payload(current: CurrentSession) -> dict:
    session, profile = current.session, current.profile
    return {
        "state": current.state.value,
        "loading": current.loading,
        "role": current.role.value if current.role else None,
        "user": {
            "id": session.user_id,
            "email": session.email,
            "first_name": profile.first_name if profile else None,
            "last_name": profile.last_name if profile else None,
        } if session else None,
        "expires_at": session.expires_at.isoformat() if session else None,
    }


def navigation_payload(current: CurrentSession) -> list:
    return [
        {"label": item.label, "route": item.route_id}
        for item in capabilities_for(current.role).navigation_items
    ]


def register_routes(app, backend):
    """Register all API routes on the Flask *app*."""

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "Hospital Operations Console API",
            "version": "1.0.0",
            "status": "running",
            "endpoints": {
                "signup": "/api/auth/signup",
                "login": "/api/auth/login",
                "logout": "/api/auth/logout",
                "session": "/api/session",
                "navigation": "/api/navigation",
                "access": "/api/access?route=/patients",
                "dashboard": "/api/dashboard",
                "health": "/health",
            },
        })

    @app.route("/health", methods=["GET"])
    def health():
        cleanup_expired_sessions()
        database_ok = backend.ping()
        return jsonify({
            "status": "healthy" if database_ok else "unhealthy",
            "checks": {"database": database_ok},
            "active_sessions": len(sessions),
        }), 200 if database_ok else 503

    # ── Auth ─────────────────────────────────────────────────────────

    @app.route("/api/auth/signup", methods=["POST"])
    async def signup():
        if not request.is_json:
            return jsonify({"error": "Content-Type must be application/json"}), 400

        data = request.json
        fields = {k: str(data.get(k, "")).strip()
                  for k in ("email", "password", "role", "first_name", "last_name")}
        missing = [k for k in ("email", "password", "role") if not fields[k]]
        if missing:
            return jsonify({"error": f"Missing fields: {', '.join(missing)}"}), 400

        entry = new_client_entry(backend)
        store = entry["store"]
        try:
            identity = await store.sign_up(**fields)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400
        except AuthError as e:
            return jsonify({"error": f"Signup failed: {e}"}), 400
        except ProfileError as e:
            return jsonify({"error": str(e)}), 409
        finally:
            store.close()

        return jsonify({
            "success": True,
            "user": {"id": identity.user_id, "email": identity.email},
            "message": "Account created successfully! Please log in.",
            "next": LOGIN_ROUTE,
        }), 201

    @app.route("/api/auth/login", methods=["POST"])
    async def login():
        if not request.is_json:
            return jsonify({"error": "Content-Type must be application/json"}), 400

        data = request.json
        email = str(data.get("email", "")).strip()
        password = str(data.get("password", ""))
        if not email or not password:
            return jsonify({"error": "email and password are required"}), 400

        entry = new_client_entry(backend)
        store = entry["store"]
        try:
            await store.initialize()
            current = await store.sign_in(email, password)
        except AuthError as e:
            store.close()
            return jsonify({"error": f"Authentication failed: {e}"}), 401
        except Exception:
            store.close()
            logger.error("Login error:\n%s", traceback.format_exc())
            return jsonify({"error": "Internal server error during login"}), 500

        token = current.session.access_token
        sessions[token] = entry
        payload = session_payload(current)
        payload.update({
            "success": True,
            "token": token,
            "navigation": navigation_payload(current),
        })
        return jsonify(payload), 200

    @app.route("/api/auth/logout", methods=["POST"])
    @token_required
    async def logout():
        entry = request.client_entry
        await entry["store"].sign_out()
        notices = list(entry["notices"])
        drop_session(request.token)
        return jsonify({
            "success": True,
            "message": "Logged out successfully",
            "notices": notices,
            "next": LOGIN_ROUTE,
        }), 200

    # ── Session / navigation / access ────────────────────────────────

    @app.route("/api/session", methods=["GET"])
    @token_required
    async def get_session():
        entry = request.client_entry
        payload = session_payload(entry["store"].get_current())
        payload["success"] = True
        payload["created_at"] = entry["created_at"].isoformat()
        payload["last_activity"] = entry["last_activity"].isoformat()
        return jsonify(payload), 200

    @app.route("/api/navigation", methods=["GET"])
    @token_required
    async def get_navigation():
        current = request.client_entry["store"].get_current()
        return jsonify({
            "success": True,
            "role": current.role.value if current.role else None,
            "items": navigation_payload(current),
        }), 200

    @app.route("/api/access", methods=["GET"])
    @token_required
    async def check_access():
        route_id = request.args.get("route", DASHBOARD_ROUTE)
        result = evaluate_route(request.client_entry["store"].get_current(), route_id)
        return jsonify({
            "route": route_id,
            "decision": result.decision.value,
            "allowed": result.allowed,
            "redirect_to": result.redirect_to,
        }), 200

    # ── Dashboard ────────────────────────────────────────────────────

    @app.route("/api/dashboard", methods=["GET"])
    @token_required
    async def get_dashboard():
        entry = request.client_entry
        current = entry["store"].get_current()
        result = evaluate_route(current, DASHBOARD_ROUTE)
        if not result.allowed:
            return jsonify({
                "error": "Not authorized for this route",
                "redirect_to": result.redirect_to,
            }), 403

        snapshot = await entry["aggregator"].compute(current.role, current.session)
        return jsonify({
            "success": True,
            "role": current.role.value if current.role else None,
            "stats": snapshot.to_dict(),
            "degraded": snapshot.degraded,
        }), 200

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Endpoint not found", "message": str(e)}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "message": str(e)}), 405

    @app.errorhandler(500)
    def internal_error(e):
        return jsonify({"error": "Internal server error", "message": str(e)}), 500
