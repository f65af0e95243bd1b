"""Signed, append-only audit trail for admin actions.

Every line of ``AUDIT_LOG_FILE`` is one JSON event carrying an HMAC-SHA256
signature over its canonical form, so edits to past entries are detectable:

    python -m scripts.audit      # exit 0 when every signature verifies
"""

from __future__ import annotations
import datetime
import hashlib
import hmac
import json
import os
import sys
from pathlib import Path
from typing import Any, Iterator, Literal

AUDIT_LOG_DIR = Path(os.environ.get("AUDIT_LOG_DIR", ".runtime/audit"))
AUDIT_LOG_FILE = AUDIT_LOG_DIR / "admin-events.jsonl"

DEMO_SIGNING_KEY = "demo-audit-signing-key-change-in-production"
KEY_FILE_CANDIDATES = (
    Path(".runtime/secrets/audit_log_signing_key"),
    Path(".runtime/audit/audit_log_signing_key"),
)

ActionType = Literal["bulk_user_import"]


def _signing_key() -> bytes:
    """Resolve the HMAC key on every call so rotations apply without restart.

    Order: AUDIT_LOG_SIGNING_KEY_FILE, AUDIT_LOG_SIGNING_KEY, local key
    files, then the demo key.
    """
    key_file = os.environ.get("AUDIT_LOG_SIGNING_KEY_FILE")
    if key_file and Path(key_file).is_file():
        return Path(key_file).read_text(encoding="utf-8").strip().encode("utf-8")
    if "AUDIT_LOG_SIGNING_KEY" in os.environ:
        return os.environ["AUDIT_LOG_SIGNING_KEY"].strip().encode("utf-8")
    for candidate in KEY_FILE_CANDIDATES:
        if candidate.is_file():
            return candidate.read_text(encoding="utf-8").strip().encode("utf-8")
    return os.environ.get("AUDIT_LOG_SIGNING_KEY_DEMO", DEMO_SIGNING_KEY).encode("utf-8")


def _signature(event: dict[str, Any]) -> str:
    key = _signing_key()
    if not key:
        return ""
    canonical = json.dumps(event, sort_keys=True, separators=(",", ":"))
    return hmac.new(key, canonical.encode("utf-8"), hashlib.sha256).hexdigest()


def _ensure_audit_dir() -> None:
    AUDIT_LOG_DIR.mkdir(parents=True, exist_ok=True)
    AUDIT_LOG_DIR.chmod(0o700)


def _iter_events() -> Iterator[dict[str, Any]]:
    """Parsed events in file order; an unparsable line comes back as ``{}``."""
    if not AUDIT_LOG_FILE.exists():
        return
    with AUDIT_LOG_FILE.open("r", encoding="utf-8") as f:
        for line in f:
            if not line.strip():
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError:
                yield {}


def log_admin_action(
    action: ActionType,
    details: str,
    resource_type: str,
    *,
    operator: str = "system",
    realm: str = "demo",
    context: dict[str, Any] | None = None,
    success: bool = True,
) -> None:
    """Append one signed event.

    ``details`` is the human readable summary (e.g. "Imported 3 users
    (1 failed)"); ``context`` holds structured data such as the tally and the
    correlation id.

    Raises:
        OSError: When the audit file cannot be written
    """
    _ensure_audit_dir()

    event: dict[str, Any] = {
        "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(),
        "action": action,
        "resource_type": resource_type,
        "details": details,
        "realm": realm,
        "operator": operator,
        "success": success,
        "context": context or {},
    }
    signature = _signature(event)
    if signature:
        event["signature"] = signature

    with AUDIT_LOG_FILE.open("a", encoding="utf-8") as f:
        f.write(json.dumps(event, ensure_ascii=False) + "\n")
    AUDIT_LOG_FILE.chmod(0o600)


def safe_log_admin_action(action: ActionType, details: str, resource_type: str, **kwargs) -> bool:
    """Like log_admin_action, but reports a failed write on stderr and returns False."""
    try:
        log_admin_action(action, details, resource_type, **kwargs)
    except Exception as e:
        print(f"[audit] Warning: Failed to log {action} event: {e}", file=sys.stderr)
        return False
    return True


def read_events(limit: int | None = None) -> list[dict[str, Any]]:
    """Logged events, newest first."""
    events = [event for event in _iter_events() if event]
    events.reverse()
    return events if limit is None else events[:limit]


def verify_audit_log() -> tuple[int, int]:
    """Return (events, events whose signature matches the current key)."""
    total = valid = 0
    for event in _iter_events():
        total += 1
        stored = event.pop("signature", "")
        if stored and hmac.compare_digest(stored, _signature(event)):
            valid += 1
    return total, valid


if __name__ == "__main__":
    total, valid = verify_audit_log()
    print(f"Audit log: {valid}/{total} events with valid signatures")
    sys.exit(0 if total == valid else 1)
