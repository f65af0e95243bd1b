"""Record normalizer/validator: RawRecord -> CandidateRecord or nothing."""
from __future__ import annotations
import logging
import re
from typing import Iterable, Optional

from .models import CandidateRecord, RawRecord, RecordStatus

logger = logging.getLogger(__name__)

DEFAULT_ROLE = "user"

# Operator selection meaning "no default entitlement".
NO_ENTITLEMENT = "none"

IDENTITY_KEY_PATTERN = re.compile(r"\S+@\S+\.\S+")


def is_valid_identity_key(value: Optional[str]) -> bool:
    """Basic email shape check: something@something.something."""
    return bool(value) and IDENTITY_KEY_PATTERN.search(value) is not None


def resolve_default_entitlement(value: Optional[str]) -> Optional[str]:
    """Map the operator's selection to a default entitlement, or None."""
    if value is None:
        return None
    value = value.strip()
    if not value or value.lower() == NO_ENTITLEMENT:
        return None
    return value


def normalize(
    raw: RawRecord,
    default_entitlement: Optional[str] = None,
    default_role: str = DEFAULT_ROLE,
) -> Optional[CandidateRecord]:
    """Build a CandidateRecord from a raw row, or return None to exclude it.

    Never raises: a structurally broken row is excluded, not fatal.
    """
    if not isinstance(raw, dict):
        return None

    identity_key = raw.get("identity_key")
    identity_key = identity_key.strip() if isinstance(identity_key, str) else ""
    if not is_valid_identity_key(identity_key):
        logger.warning("Invalid email format: %r", identity_key)
        return None

    display_name = _text(raw.get("display_name")) or identity_key.split("@", 1)[0]
    role_tag = _text(raw.get("role_tag")) or default_role
    entitlement_tag = _text(raw.get("entitlement_tag")) or resolve_default_entitlement(default_entitlement)

    return CandidateRecord(
        identity_key=identity_key,
        display_name=display_name,
        role_tag=role_tag,
        entitlement_tag=entitlement_tag,
        status=RecordStatus.PENDING,
    )


def normalize_all(
    raws: Iterable[RawRecord],
    default_entitlement: Optional[str] = None,
    default_role: str = DEFAULT_ROLE,
) -> list[CandidateRecord]:
    """Normalize every row, keeping input order and dropping invalid ones."""
    candidates = []
    for raw in raws:
        candidate = normalize(raw, default_entitlement, default_role)
        if candidate is not None:
            candidates.append(candidate)
    return candidates


def _text(value) -> str:
    return value.strip() if isinstance(value, str) else ""
