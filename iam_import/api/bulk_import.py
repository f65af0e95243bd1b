"""Admin routes for bulk account import (preview, then commit)."""
from __future__ import annotations
import logging
from functools import wraps

from flask import Blueprint, abort, current_app, g, jsonify, request, session

from iam_import.core.bulk import (
    CandidateRecord,
    ImportFormat,
    ImportParseError,
    NothingToImportError,
    TooManyRecordsError,
    example_input,
)
from iam_import.core.bulk.normalizer import NO_ENTITLEMENT
from iam_import.core.bulk_service import build_workflow
from iam_import.core.rbac import current_user_context, current_username, has_any_role, is_authenticated

bp = Blueprint("bulk_import", __name__)

logger = logging.getLogger(__name__)

SESSION_CANDIDATES_KEY = "bulk_import_candidates"


# ─────────────────────────────────────────────────────────────────────────────
# Decorators
# ─────────────────────────────────────────────────────────────────────────────
def require_import_operator(fn):
    """Restrict bulk provisioning to operators only (iam-operator, realm-admin)."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not is_authenticated():
            abort(401)

        cfg = current_app.config["APP_CONFIG"]
        _, _, _, roles = current_user_context()
        if not has_any_role(roles, [cfg.realm_admin_role, cfg.iam_operator_role]):
            abort(403, description=f"Required role: {cfg.iam_operator_role}, {cfg.realm_admin_role}")

        return fn(*args, **kwargs)
    return wrapper


# ─────────────────────────────────────────────────────────────────────────────
# Helper Functions
# ─────────────────────────────────────────────────────────────────────────────
def _stored_candidates() -> list[CandidateRecord]:
    return [CandidateRecord.from_dict(item) for item in session.get(SESSION_CANDIDATES_KEY) or []]


def _store_candidates(candidates: list[CandidateRecord]) -> None:
    session[SESSION_CANDIDATES_KEY] = [candidate.to_dict() for candidate in candidates]


def _bad_request(error: str, message: str, status: int = 400):
    return jsonify({"error": error, "message": message}), status


def _parse_format(value):
    if value is not None and not isinstance(value, str):
        abort(400, description="format must be a string")
    try:
        return ImportFormat.from_value(value or ImportFormat.DELIMITED.value)
    except ValueError as exc:
        abort(400, description=str(exc))


# ─────────────────────────────────────────────────────────────────────────────
# Routes
# ─────────────────────────────────────────────────────────────────────────────
@bp.get("/")
@require_import_operator
def import_state():
    """Options for the import form plus the currently previewed candidates."""
    cfg = current_app.config["APP_CONFIG"]
    return jsonify({
        "csrf_token": g.get("csrf_token", ""),
        "formats": [fmt.value for fmt in ImportFormat],
        "delimiter": cfg.delimiter,
        "entitlements": [NO_ENTITLEMENT] + cfg.entitlements,
        "max_records": cfg.max_records,
        "records": [candidate.to_dict() for candidate in _stored_candidates()],
    })


@bp.get("/example")
@require_import_operator
def import_example():
    """Example input for the requested format."""
    cfg = current_app.config["APP_CONFIG"]
    fmt = _parse_format(request.args.get("format"))
    delimiter = request.args.get("delimiter") or cfg.delimiter
    return jsonify({"format": fmt.value, "data": example_input(fmt, delimiter)})


@bp.post("/preview")
@require_import_operator
def import_preview():
    """Parse and validate input; the result replaces any earlier preview."""
    cfg = current_app.config["APP_CONFIG"]
    body = request.get_json(silent=True) or {}
    if not isinstance(body, dict):
        return _bad_request("Bad Request", "Request body must be a JSON object")

    fmt = _parse_format(body.get("format"))
    data = body.get("data")
    if not isinstance(data, str) or not data.strip():
        return _bad_request("Bad Request", "data is required")

    delimiter = body.get("delimiter") or None
    if delimiter is not None and not isinstance(delimiter, str):
        return _bad_request("Bad Request", "delimiter must be a string")

    default_entitlement = body.get("default_entitlement") or None
    if default_entitlement is not None and not isinstance(default_entitlement, str):
        return _bad_request("Bad Request", "default_entitlement must be a string")
    if default_entitlement and default_entitlement.lower() != NO_ENTITLEMENT \
            and default_entitlement.lower() not in cfg.entitlements:
        return _bad_request("Bad Request", f"Unknown entitlement '{default_entitlement}'")

    session.pop(SESSION_CANDIDATES_KEY, None)
    workflow = build_workflow(current_username() or "system", cfg)
    try:
        candidates = workflow.preview(data, fmt, default_entitlement, delimiter=delimiter)
    except ImportParseError as exc:
        logger.warning("Bulk import preview rejected: %s", exc)
        return _bad_request("Invalid JSON format", "Please check your JSON data format and try again.")
    except TooManyRecordsError as exc:
        return _bad_request("Too Many Records", str(exc), 413)

    _store_candidates(candidates)
    return jsonify({
        "count": len(candidates),
        "message": f"Parsed {len(candidates)} users",
        "records": [candidate.to_dict() for candidate in candidates],
    })


@bp.post("/commit")
@require_import_operator
def import_commit():
    """Provision the previewed candidates one by one and report the outcome."""
    cfg = current_app.config["APP_CONFIG"]
    operator = current_username() or "system"

    workflow = build_workflow(operator, cfg)
    workflow.load(_stored_candidates())
    try:
        reporter = workflow.commit()
    except NothingToImportError as exc:
        return _bad_request("No valid users to import", str(exc))

    session.pop(SESSION_CANDIDATES_KEY, None)
    result = reporter.result
    logger.info("Bulk import by %s: %s", operator, result.to_dict())
    return jsonify({
        "message": f"Successfully imported {result.success} users. Failed: {result.failed}.",
        "result": result.to_dict(),
        "records": [record.to_dict() for record in reporter.records()],
    })
