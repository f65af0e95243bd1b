"""Record parser: raw operator input -> ordered RawRecord sequence.

Each ImportFormat has its own strategy; both produce the same RawRecord shape
so validation downstream never needs to know where a row came from.
"""
from __future__ import annotations
import json
from typing import Any, Callable

from .models import FIELD_ORDER, ImportFormat, ImportParseError, RawRecord

DEFAULT_DELIMITER = ","
DEFAULT_HEADER_TOKEN = "email"

# Accepted keys for structured entries, first match wins.
STRUCTURED_KEYS = {
    "identity_key": ("identity_key", "email", "identityKey"),
    "display_name": ("display_name", "username", "displayName", "name"),
    "role_tag": ("role_tag", "role", "roleTag"),
    "entitlement_tag": ("entitlement_tag", "licenseType", "license_type", "entitlement", "entitlementTag"),
}


def _put(record: RawRecord, field: str, value: Any) -> bool:
    """Store the trimmed value; False when there is nothing to store."""
    if value is None or isinstance(value, (dict, list)):
        return False
    text = str(value).strip()
    if not text:
        return False
    record[field] = text
    return True


def parse_delimited(
    raw_text: str,
    delimiter: str = DEFAULT_DELIMITER,
    header_token: str = DEFAULT_HEADER_TOKEN,
) -> list[RawRecord]:
    """Parse one record per line, fields split on ``delimiter``.

    The first non-blank line is treated as a header, and skipped, when its
    lowercased content contains ``header_token``.
    """
    if not delimiter:
        raise ValueError("delimiter must not be empty")

    lines = (raw_text or "").splitlines()
    token = header_token.lower()
    records: list[RawRecord] = []
    header_checked = False

    for line in lines:
        line = line.strip()
        if not line:
            continue
        if not header_checked:
            header_checked = True
            if token and token in line.lower():
                continue

        values = line.split(delimiter)
        record: RawRecord = {}
        for field, value in zip(FIELD_ORDER, values):
            _put(record, field, value)
        records.append(record)

    return records


def parse_structured(raw_text: str) -> list[RawRecord]:
    """Parse a JSON array of objects.

    Raises:
        ImportParseError: If the document is not valid JSON or not a list.
            No partial result is produced.
    """
    try:
        document = json.loads(raw_text)
    except (TypeError, ValueError) as exc:
        raise ImportParseError(f"Invalid JSON format: {exc}") from exc

    if not isinstance(document, list):
        raise ImportParseError("Invalid JSON format: expected an array of objects")

    records: list[RawRecord] = []
    for entry in document:
        if not isinstance(entry, dict):
            continue
        record: RawRecord = {}
        for field in FIELD_ORDER:
            for key in STRUCTURED_KEYS[field]:
                if _put(record, field, entry.get(key)):
                    break
        records.append(record)
    return records


def parse(
    raw_text: str,
    fmt: ImportFormat,
    delimiter: str = DEFAULT_DELIMITER,
    header_token: str = DEFAULT_HEADER_TOKEN,
) -> list[RawRecord]:
    """Parse ``raw_text`` with the strategy registered for ``fmt``."""
    strategies: dict[ImportFormat, Callable[[], list[RawRecord]]] = {
        ImportFormat.DELIMITED: lambda: parse_delimited(raw_text, delimiter, header_token),
        ImportFormat.STRUCTURED: lambda: parse_structured(raw_text),
    }
    return strategies[ImportFormat(fmt)]()


def example_input(fmt: ImportFormat, delimiter: str = DEFAULT_DELIMITER) -> str:
    """Sample input an operator can start from."""
    if ImportFormat(fmt) is ImportFormat.STRUCTURED:
        return json.dumps([
            {"email": "john@example.com", "username": "John Smith", "role": "user", "licenseType": "basic"},
            {"email": "alice@example.com", "username": "Alice Johnson", "role": "admin", "licenseType": "premium"},
        ], indent=2)
    rows = [
        ["email", "username", "role", "licenseType"],
        ["john@example.com", "John Smith", "user", "basic"],
        ["alice@example.com", "Alice Johnson", "admin", "premium"],
    ]
    return "\n".join(delimiter.join(row) for row in rows)
