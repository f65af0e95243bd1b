"""Operator workflow: preview (parse, validate, dedupe) then commit.

A workflow holds the candidate set between the two actions. Every preview
replaces that set, and a commit consumes it.
"""
from __future__ import annotations
import logging
import threading
from typing import Callable, Iterable, Optional

from .dedupe import dedupe
from .models import CandidateRecord, ImportFormat, ImportRunResult, RecordCompletion
from .normalizer import DEFAULT_ROLE, normalize_all
from .orchestrator import AuditSink, ImportOrchestrator, ProvisionFn
from .parser import DEFAULT_DELIMITER, DEFAULT_HEADER_TOKEN, parse
from .reporter import ImportReporter

logger = logging.getLogger(__name__)


class NothingToImportError(ValueError):
    """Commit requested without a previewed candidate set."""


class TooManyRecordsError(ValueError):
    """Preview produced more candidates than one run may provision."""


def build_candidates(
    raw_text: str,
    fmt: ImportFormat,
    default_entitlement: Optional[str] = None,
    *,
    delimiter: str = DEFAULT_DELIMITER,
    header_token: str = DEFAULT_HEADER_TOKEN,
    default_role: str = DEFAULT_ROLE,
    case_insensitive_keys: bool = False,
) -> list[CandidateRecord]:
    """Parser -> Normalizer -> Deduplicator.

    Raises:
        ImportParseError: When a structured document cannot be parsed.
    """
    raws = parse(raw_text, fmt, delimiter=delimiter, header_token=header_token)
    candidates = normalize_all(raws, default_entitlement, default_role)
    unique = dedupe(candidates, case_insensitive=case_insensitive_keys)
    logger.info(
        "Parsed %d rows into %d candidates (%d invalid, %d duplicates)",
        len(raws), len(unique), len(raws) - len(candidates), len(candidates) - len(unique),
    )
    return unique


class BulkImportWorkflow:
    """Two-phase bulk import bound to one provisioning function."""

    def __init__(
        self,
        provision: ProvisionFn,
        audit_sink: Optional[AuditSink] = None,
        *,
        delimiter: str = DEFAULT_DELIMITER,
        header_token: str = DEFAULT_HEADER_TOKEN,
        default_role: str = DEFAULT_ROLE,
        case_insensitive_keys: bool = False,
        max_workers: int = 1,
        max_records: Optional[int] = None,
    ):
        self.provision = provision
        self.audit_sink = audit_sink
        self.delimiter = delimiter
        self.header_token = header_token
        self.default_role = default_role
        self.case_insensitive_keys = case_insensitive_keys
        self.max_workers = max_workers
        self.max_records = max_records
        self._candidates: list[CandidateRecord] = []
        self.last_result: Optional[ImportRunResult] = None

    @classmethod
    def from_settings(cls, cfg, provision: ProvisionFn, audit_sink: Optional[AuditSink] = None, **overrides) -> "BulkImportWorkflow":
        options = dict(
            delimiter=cfg.delimiter,
            header_token=cfg.header_token,
            default_role=cfg.default_role,
            case_insensitive_keys=cfg.case_insensitive_keys,
            max_workers=cfg.max_workers,
            max_records=cfg.max_records,
        )
        options.update({key: value for key, value in overrides.items() if value is not None})
        return cls(provision, audit_sink, **options)

    @property
    def candidates(self) -> list[CandidateRecord]:
        return [candidate.copy() for candidate in self._candidates]

    def load(self, candidates: Iterable[CandidateRecord]) -> None:
        """Restore a candidate set previewed earlier (e.g. kept in a session)."""
        self._candidates = [candidate.copy() for candidate in candidates]

    def preview(
        self,
        raw_text: str,
        fmt: ImportFormat,
        default_entitlement: Optional[str] = None,
        delimiter: Optional[str] = None,
    ) -> list[CandidateRecord]:
        """Parse and validate input without provisioning anything.

        The previous candidate set is discarded even when parsing fails.

        Raises:
            ImportParseError: Structured input could not be parsed
            TooManyRecordsError: More candidates than ``max_records``
        """
        self._candidates = []
        self.last_result = None
        candidates = build_candidates(
            raw_text,
            fmt,
            default_entitlement,
            delimiter=delimiter or self.delimiter,
            header_token=self.header_token,
            default_role=self.default_role,
            case_insensitive_keys=self.case_insensitive_keys,
        )
        if self.max_records is not None and len(candidates) > self.max_records:
            raise TooManyRecordsError(
                f"{len(candidates)} users exceed the limit of {self.max_records} per import"
            )
        self._candidates = candidates
        return self.candidates

    def commit(
        self,
        on_update: Optional[Callable[[RecordCompletion], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ImportReporter:
        """Provision the previewed candidates.

        Returns the reporter holding final per-record statuses and the result.
        The candidate set is consumed: a second commit needs a new preview.

        Raises:
            NothingToImportError: No candidates were previewed
        """
        if not self._candidates:
            raise NothingToImportError("No valid users to import. Preview your data first.")

        orchestrator = ImportOrchestrator(self.provision, self.audit_sink, max_workers=self.max_workers)
        reporter = ImportReporter(self._candidates, on_update=on_update)
        orchestrator.subscribe(reporter.on_completion)

        result = orchestrator.run(self._candidates, cancel_event=cancel_event)
        reporter.finalize(result)

        # Final statuses live on the reporter; the set is consumed.
        self._candidates = []
        self.last_result = result
        return reporter
