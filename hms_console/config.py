"""
Centralised configuration constants and environment helpers.
"""

import os
import sys

from dotenv import load_dotenv

load_dotenv()

# ── Routes ───────────────────────────────────────────────────────────
LOGIN_ROUTE = "/login"
SIGNUP_ROUTE = "/signup"
DASHBOARD_ROUTE = "/"

# ── Dashboard ────────────────────────────────────────────────────────
NOTIFICATION_LIMIT = 5
PENDING_STATUS = "pending"

# ── Backend tables ───────────────────────────────────────────────────
USERS_TABLE = "users"
PROFILES_TABLE = "user_profiles"
NOTIFICATIONS_TABLE = "notifications"

# ── Sessions ─────────────────────────────────────────────────────────
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
TOKEN_EXPIRY_HOURS = int(os.getenv("TOKEN_EXPIRY_HOURS", "24"))

# ── API server ───────────────────────────────────────────────────────
API_HOST = os.getenv("API_HOST", "0.0.0.0")
API_PORT = int(os.getenv("API_PORT", "8000"))


def get_env(name: str) -> str:
    """Return an environment variable or exit with an error message."""
    value = os.getenv(name)
    if not value:
        print(f"ERROR: env var {name} is not set", file=sys.stderr)
        sys.exit(1)
    return value
