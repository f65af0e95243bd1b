"""Liveness and readiness endpoints."""
import os

from flask import Blueprint, current_app, jsonify

from scripts import audit

bp = Blueprint("health", __name__)


@bp.route("/health")
def health_check():
    """Process is up."""
    return ("ok", 200, {"Content-Type": "text/plain"})


@bp.route("/ready")
def readiness_check():
    """Ready when configuration is loaded and the audit trail can be written."""
    cfg = current_app.config.get("APP_CONFIG")
    audit_ready = _writable(audit.AUDIT_LOG_DIR)

    checks = {"config": cfg is not None, "audit_log": bool(audit_ready)}
    status = 200 if all(checks.values()) else 503
    return jsonify({"status": "ready" if status == 200 else "not ready", "checks": checks}), status


def _writable(path) -> bool:
    # The audit directory is created on first write, so check its nearest existing ancestor.
    for candidate in (path, *path.parents):
        if candidate.exists():
            return os.access(candidate, os.W_OK)
    return False
