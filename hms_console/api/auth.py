"""
Bearer-token helpers and the per-client session registry for the Flask API.
"""

import threading
from datetime import datetime
from functools import wraps
from typing import Any, Dict, List, Optional

from flask import jsonify, request

from hms_console.config import TOKEN_EXPIRY_HOURS
from hms_console.dashboard import DashboardAggregator
from hms_console.session_store import SessionStore

# In-memory registry of signed-in clients (use Redis in production)
# Structure: {token: {"store": SessionStore, "aggregator": DashboardAggregator,
#                     "notices": [...], "lock": threading.Lock,
#                     "created_at": datetime, "last_activity": datetime}}
# Requests for one token are served one at a time under its lock.
sessions: Dict[str, Dict[str, Any]] = {}


def new_client_entry(backend) -> Dict[str, Any]:
    """Build a fresh client: its own backend client, store and aggregator."""
    notices: List[Dict[str, str]] = []
    client = backend.client()

    def on_notice(level: str, message: str) -> None:
        notices.append({"level": level, "message": message})

    now = datetime.utcnow()
    return {
        "store": SessionStore(client, on_notice=on_notice),
        "aggregator": DashboardAggregator(client),
        "notices": notices,
        "lock": threading.Lock(),
        "created_at": now,
        "last_activity": now,
    }


def extract_token() -> Optional[str]:
    """Bearer token from the Authorization header, or the token query param."""
    if "Authorization" in request.headers:
        parts = request.headers["Authorization"].split(" ")
        if len(parts) == 2 and parts[0].lower() == "bearer":
            return parts[1]
        return None
    return request.args.get("token")


def drop_session(token: str) -> None:
    entry = sessions.pop(token, None)
    if entry is not None:
        entry["store"].close()


def token_required(f):
    """Decorator that protects async endpoints with a registered session."""
    @wraps(f)
    async def decorated(*args, **kwargs):
        token = extract_token()
        if not token:
            return jsonify({"error": "Authentication token is missing"}), 401

        entry = sessions.get(token)
        if entry is None:
            return jsonify({"error": "Session not found. Please login again."}), 401

        with entry["lock"]:
            current = await entry["store"].revalidate()
            if current.session is None:
                drop_session(token)
                return jsonify({"error": "Invalid or expired token"}), 401

            entry["last_activity"] = datetime.utcnow()
            request.client_entry = entry
            request.token = token

            return await f(*args, **kwargs)

    return decorated


def cleanup_expired_sessions() -> int:
    """Remove clients that have been inactive beyond TOKEN_EXPIRY_HOURS."""
    now = datetime.utcnow()
    expired = [
        tok for tok, data in sessions.items()
        if (now - data["last_activity"]).total_seconds() > TOKEN_EXPIRY_HOURS * 3600
    ]
    for tok in expired:
        drop_session(tok)
    if expired:
        print(f"[cleanup] Removed {len(expired)} expired sessions")
    return len(expired)
