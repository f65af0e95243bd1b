"""Deduplication of candidates on their identity key."""
from __future__ import annotations
import logging
from typing import Iterable

from .models import CandidateRecord

logger = logging.getLogger(__name__)


def dedupe_key(identity_key: str, case_insensitive: bool = False) -> str:
    return identity_key.casefold() if case_insensitive else identity_key


def dedupe(candidates: Iterable[CandidateRecord], case_insensitive: bool = False) -> list[CandidateRecord]:
    """Drop later candidates whose identity key was already seen.

    Stable: output keeps input order and the first occurrence wins. Keys are
    compared exactly unless ``case_insensitive`` is set; the stored key is
    never rewritten either way.
    """
    seen: set[str] = set()
    unique: list[CandidateRecord] = []
    for candidate in candidates:
        key = dedupe_key(candidate.identity_key, case_insensitive)
        if key in seen:
            logger.info("Dropping duplicate candidate %s", candidate.identity_key)
            continue
        seen.add(key)
        unique.append(candidate)
    return unique
