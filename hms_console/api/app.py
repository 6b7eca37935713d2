"""
Flask application factory and server entry-point.
"""

import os
import sys
import traceback

from flask import Flask
from flask_cors import CORS

from hms_console.api.routes import register_routes
from hms_console.backend import SqlBackend, init_engine
from hms_console.config import API_HOST, API_PORT, TOKEN_EXPIRY_HOURS


def create_app(backend=None):
    """Build and return a fully configured Flask application."""
    app = Flask(__name__)
    CORS(app)

    # ── Initialise shared resources ──────────────────────────────────
    if backend is None:
        try:
            print("[init] Initializing database connection...")
            backend = SqlBackend(init_engine())

            print("[init] Ensuring schema...")
            backend.create_schema()

            print("[init] ✓ API server ready")
        except Exception as e:
            print(f"[FATAL] Failed to initialize: {e}", file=sys.stderr)
            traceback.print_exc()
            sys.exit(1)

    # ── Register routes ──────────────────────────────────────────────
    register_routes(app, backend)

    return app


def main():
    """Run the development server."""
    print("=" * 60)
    print("Hospital Operations Console – REST API Server")
    print("=" * 60)

    app = create_app()
    debug = os.getenv("FLASK_ENV") == "development"

    print(f"\n[server] Starting Flask API on {API_HOST}:{API_PORT}")
    print(f"[server] Debug mode: {debug}")
    print(f"[server] Session expiry: {TOKEN_EXPIRY_HOURS} hours")
    print("\nAPI Endpoints:")
    print(f"  - POST http://{API_HOST}:{API_PORT}/api/auth/signup")
    print(f"  - POST http://{API_HOST}:{API_PORT}/api/auth/login")
    print(f"  - POST http://{API_HOST}:{API_PORT}/api/auth/logout")
    print(f"  - GET  http://{API_HOST}:{API_PORT}/api/session")
    print(f"  - GET  http://{API_HOST}:{API_PORT}/api/navigation")
    print(f"  - GET  http://{API_HOST}:{API_PORT}/api/access?route=/patients")
    print(f"  - GET  http://{API_HOST}:{API_PORT}/api/dashboard")
    print(f"  - GET  http://{API_HOST}:{API_PORT}/health")
    print("\n" + "=" * 60)

    app.run(host=API_HOST, port=API_PORT, debug=debug, threaded=True)


if __name__ == "__main__":
    main()
