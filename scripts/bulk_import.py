"""Bulk account import from the command line.

    python scripts/bulk_import.py preview users.csv
    python scripts/bulk_import.py --operator alice commit users.json --format structured --workers 4

This module is a CLI wrapper around iam_import.core.bulk_service, so a commit
provisions and audits exactly like the admin API does.
"""
from __future__ import annotations
import argparse
import os
import sys
import threading
from pathlib import Path

SCRIPT_DIR = Path(__file__).parent
PROJECT_ROOT = SCRIPT_DIR.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from iam_import.config import get_settings, reset_settings
from iam_import.core import provisioning_service
from iam_import.core.bulk import (
    CandidateRecord,
    ImportFormat,
    ImportParseError,
    ImportReporter,
    NothingToImportError,
    RecordCompletion,
    RecordStatus,
    TooManyRecordsError,
)
from iam_import.core.bulk_service import build_workflow
from iam_import.logging_setup import configure_logging

# CLI flag -> environment variable read by load_settings()
CONNECTION_FLAGS = {
    "kc_url": "KEYCLOAK_URL",
    "realm": "KEYCLOAK_REALM",
    "auth_realm": "KEYCLOAK_SERVICE_REALM",
    "svc_client_id": "KEYCLOAK_SERVICE_CLIENT_ID",
    "svc_client_secret": "KEYCLOAK_SERVICE_CLIENT_SECRET",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Bulk account import into Keycloak")
    parser.add_argument("--kc-url", default=None, help="Keycloak base URL (default: KEYCLOAK_URL)")
    parser.add_argument("--realm", default=None, help="Target realm (default: KEYCLOAK_REALM)")
    parser.add_argument("--auth-realm", default=None, help="Service account realm (default: KEYCLOAK_SERVICE_REALM)")
    parser.add_argument("--svc-client-id", default=None)
    parser.add_argument("--svc-client-secret", default=None)
    parser.add_argument("--operator", default="automation",
                        help="Operator identifier for audit logs (default: automation)")

    sub = parser.add_subparsers(dest="cmd")
    for name, help_text in (
        ("preview", "Parse and validate input without provisioning"),
        ("commit", "Provision every valid, unique record"),
    ):
        sp = sub.add_parser(name, help=help_text)
        sp.add_argument("input", nargs="?", default="-", help="Input file (default: stdin)")
        sp.add_argument("--format", default=None,
                        help="delimited|structured (default: guessed from the file suffix)")
        sp.add_argument("--delimiter", default=None)
        sp.add_argument("--default-entitlement", default=None,
                        help="Entitlement for records without one (none|basic|premium|enterprise)")
        if name == "commit":
            sp.add_argument("--workers", type=int, default=None,
                            help="Concurrent provisioning calls (default: BULK_IMPORT_MAX_WORKERS)")
    return parser


def _read_input(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def _resolve_format(value: str | None, path: str) -> ImportFormat:
    if value:
        return ImportFormat.from_value(value)
    if path.lower().endswith(".json"):
        return ImportFormat.STRUCTURED
    return ImportFormat.DELIMITED


def print_table(candidates: list[CandidateRecord]) -> None:
    """Print candidates as an aligned table."""
    headers = ("EMAIL", "NAME", "ROLE", "ENTITLEMENT", "STATUS")
    rows = [
        (
            c.identity_key,
            c.display_name,
            c.role_tag,
            c.entitlement_tag or "-",
            c.status.value if c.status_message is None else f"{c.status.value}: {c.status_message}",
        )
        for c in candidates
    ]
    widths = [max(len(str(cell)) for cell in column) for column in zip(headers, *rows)]
    for row in (headers, *rows):
        print("  ".join(str(cell).ljust(width) for cell, width in zip(row, widths)).rstrip())


def _print_progress(event: RecordCompletion) -> None:
    marker = "ok" if event.status is RecordStatus.SUCCESS else "FAILED"
    print(f"[bulk-import] #{event.index + 1} {event.identity_key}: {marker} ({event.message})", flush=True)


def _commit(workflow, on_update) -> ImportReporter:
    """Run the commit in a worker thread so Ctrl-C can cancel the remaining records."""
    cancel_event = threading.Event()
    outcome: dict = {}

    def target():
        try:
            outcome["reporter"] = workflow.commit(on_update=on_update, cancel_event=cancel_event)
        except Exception as exc:  # re-raised in the main thread
            outcome["error"] = exc

    worker = threading.Thread(target=target, name="bulk-import-commit", daemon=True)
    worker.start()
    try:
        while worker.is_alive():
            worker.join(0.2)
    except KeyboardInterrupt:
        print("[bulk-import] Cancelling; records in flight will finish", file=sys.stderr)
        cancel_event.set()
        worker.join()

    if "error" in outcome:
        raise outcome["error"]
    return outcome["reporter"]


def main() -> None:
    """Command-line entry point."""
    parser = build_parser()
    args = parser.parse_args()
    if not args.cmd:
        parser.print_help()
        sys.exit(2)

    for attr, env_var in CONNECTION_FLAGS.items():
        value = getattr(args, attr)
        if value:
            os.environ[env_var] = value
    reset_settings()
    provisioning_service.reset_service_client()
    cfg = get_settings()
    configure_logging(cfg.log_level)

    try:
        fmt = _resolve_format(args.format, args.input)
        raw_text = _read_input(args.input)
    except (ValueError, OSError) as e:
        print(f"[bulk-import] Error: {e}", file=sys.stderr)
        sys.exit(1)

    workflow = build_workflow(
        args.operator,
        cfg,
        delimiter=args.delimiter,
        max_workers=getattr(args, "workers", None),
    )
    try:
        candidates = workflow.preview(raw_text, fmt, args.default_entitlement)
    except ImportParseError as e:
        print(f"[bulk-import] {e}", file=sys.stderr)
        sys.exit(1)
    except TooManyRecordsError as e:
        print(f"[bulk-import] Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"[bulk-import] Parsed {len(candidates)} users")
    if args.cmd == "preview":
        if candidates:
            print_table(candidates)
        return

    try:
        reporter = _commit(workflow, _print_progress)
    except NothingToImportError as e:
        print(f"[bulk-import] {e}", file=sys.stderr)
        sys.exit(1)

    result = reporter.result
    print_table(reporter.records())
    print(f"[bulk-import] Successfully imported {result.success} users. Failed: {result.failed}.")
    if result.cancelled:
        print(f"[bulk-import] Cancelled with {result.pending} users not attempted", file=sys.stderr)
    if result.failed or result.cancelled:
        sys.exit(1)


if __name__ == "__main__":
    main()
