"""Flask application factory for the bulk import admin API.

    gunicorn -c gunicorn.conf.py iam_import.flask_app:app
"""
from __future__ import annotations
import hmac
import os
import secrets
from tempfile import gettempdir
from typing import Optional

from flask import Flask, abort, g, request, session
from flask_session import Session

from iam_import.config import AppConfig, get_settings
from iam_import.logging_setup import configure_logging

CSRF_SESSION_KEY = "_csrf_token"
CSRF_HEADER = "X-CSRF-Token"
STATE_CHANGING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})


# ─────────────────────────────────────────────────────────────────────────────
# Application Factory
# ─────────────────────────────────────────────────────────────────────────────
def create_app(cfg: Optional[AppConfig] = None) -> Flask:
    """Build the app from ``cfg`` (process settings when omitted)."""
    cfg = cfg or get_settings()
    configure_logging(cfg.log_level)

    app = Flask(__name__)
    app.config["APP_CONFIG"] = cfg
    app.config["SECRET_KEY"] = cfg.secret_key

    _configure_sessions(app, cfg)
    _register_blueprints(app)
    _register_csrf_protection(app)

    mode_label = "DEMO" if cfg.demo_mode else "PRODUCTION"
    app.logger.info(f"[flask_app] Mode={mode_label}; realm={cfg.keycloak_realm}; import at /admin/import")
    return app


def _configure_sessions(app: Flask, cfg: AppConfig) -> None:
    # Previewed candidate sets can be large, so they live server-side
    app.config["SESSION_TYPE"] = os.environ.get("FLASK_SESSION_TYPE", "filesystem")
    if app.config["SESSION_TYPE"] == "filesystem":
        session_dir = os.environ.get("FLASK_SESSION_DIR") or os.path.join(gettempdir(), "iam_import_flask_session")
        os.makedirs(session_dir, exist_ok=True)
        app.config["SESSION_FILE_DIR"] = session_dir

    app.config.update(
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        SESSION_COOKIE_SECURE=cfg.session_cookie_secure,
    )
    Session(app)


def _register_blueprints(app: Flask) -> None:
    from iam_import.api import bulk_import, errors, health

    app.register_blueprint(health.bp)
    app.register_blueprint(bulk_import.bp, url_prefix="/admin/import")
    errors.register_error_handlers(app)


def _register_csrf_protection(app: Flask) -> None:
    @app.before_request
    def enforce_csrf() -> None:
        """Issue the session token; require it back on state-changing requests."""
        g.csrf_token = _generate_csrf_token()
        if request.method not in STATE_CHANGING_METHODS:
            return

        submitted = request.headers.get(CSRF_HEADER, "")
        expected = session.get(CSRF_SESSION_KEY, "")
        if not submitted or not expected or not hmac.compare_digest(expected, submitted):
            abort(400, description="CSRF validation failed")


# ─────────────────────────────────────────────────────────────────────────────
# Helper Functions
# ─────────────────────────────────────────────────────────────────────────────
def _generate_csrf_token() -> str:
    """Generate or retrieve CSRF token for current session."""
    token = session.get(CSRF_SESSION_KEY)
    if not token:
        token = secrets.token_urlsafe(32)
        session[CSRF_SESSION_KEY] = token
    return token


# ─────────────────────────────────────────────────────────────────────────────
# Application Instance (for Gunicorn)
# ─────────────────────────────────────────────────────────────────────────────
app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=True)
