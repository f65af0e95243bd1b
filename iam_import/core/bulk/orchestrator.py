"""Import orchestrator: provisions committed candidates and tallies the outcome.

Records are provisioned in input order by a single driver. With
``max_workers > 1`` provisioning calls run on a bounded thread pool, but only
the driver thread ever mutates a record or the tally; workers just report an
outcome for the one record they were handed.
"""
from __future__ import annotations
import logging
import threading
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Iterable, Optional

from .models import CandidateRecord, ImportRunResult, RecordCompletion, RecordStatus

logger = logging.getLogger(__name__)

BULK_IMPORT_ACTION = "bulk_user_import"
AUDIT_RESOURCE_TYPE = "users"
SUCCESS_MESSAGE = "created"

# provision(record) returns anything on success and raises on failure.
ProvisionFn = Callable[[CandidateRecord], Any]
# audit_sink(action, details, resource_type, context=...) may raise.
AuditSink = Callable[..., Any]
Observer = Callable[[RecordCompletion], None]


class ImportOrchestrator:
    """Drives one commit run over a candidate set."""

    def __init__(
        self,
        provision: ProvisionFn,
        audit_sink: Optional[AuditSink] = None,
        max_workers: int = 1,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        self.provision = provision
        self.audit_sink = audit_sink
        self.max_workers = max_workers
        self._observers: list[Observer] = []
        self._records: list[CandidateRecord] = []
        self._lock = threading.Lock()
        self._result: Optional[ImportRunResult] = None

    def subscribe(self, observer: Observer) -> None:
        """Register a callback invoked after every record completion."""
        self._observers.append(observer)

    def snapshot(self) -> list[CandidateRecord]:
        """Copies of the records as they stand right now."""
        with self._lock:
            return [record.copy() for record in self._records]

    @property
    def result(self) -> Optional[ImportRunResult]:
        return self._result

    def run(
        self,
        candidates: Iterable[CandidateRecord],
        cancel_event: Optional[threading.Event] = None,
    ) -> ImportRunResult:
        """Provision every candidate and return the tally.

        Provisioning failures are recorded on the record and never raised.
        When ``cancel_event`` is set no further provisioning call is started;
        records already finished keep their status and the rest stay pending.

        Raises:
            ValueError: A candidate already left pending; nothing is provisioned.
        """
        records = [candidate.copy() for candidate in candidates]
        finished = [record.identity_key for record in records if record.is_terminal]
        if finished:
            raise ValueError(f"Records already processed, preview them again: {', '.join(finished)}")

        with self._lock:
            self._records = records
            self._result = None

        if self.max_workers == 1:
            self._run_sequential(cancel_event)
        else:
            self._run_pooled(cancel_event)

        result = self._tally(cancelled=bool(cancel_event and cancel_event.is_set()))
        self._result = result
        logger.info(
            "Bulk import finished: total=%d success=%d failed=%d cancelled=%s",
            result.total, result.success, result.failed, result.cancelled,
        )
        self._emit_audit(result)
        return result

    # ─────────────────────────────────────────────────────────────────────
    # Scheduling
    # ─────────────────────────────────────────────────────────────────────

    def _run_sequential(self, cancel_event: Optional[threading.Event]) -> None:
        for index, record in enumerate(self._records):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Bulk import cancelled before record %d of %d", index + 1, len(self._records))
                return
            ok, message = self._attempt(record.copy())
            self._complete(index, ok, message)

    def _run_pooled(self, cancel_event: Optional[threading.Event]) -> None:
        queue = iter(range(len(self._records)))
        in_flight: dict[Future, int] = {}

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="bulk-import") as executor:
            def submit_next() -> bool:
                if cancel_event is not None and cancel_event.is_set():
                    return False
                index = next(queue, None)
                if index is None:
                    return False
                in_flight[executor.submit(self._attempt, self._records[index].copy())] = index
                return True

            while len(in_flight) < self.max_workers and submit_next():
                pass

            while in_flight:
                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    ok, message = future.result()
                    self._complete(in_flight.pop(future), ok, message)
                    submit_next()

        if cancel_event is not None and cancel_event.is_set():
            logger.warning("Bulk import cancelled; remaining records left pending")

    # ─────────────────────────────────────────────────────────────────────
    # Per-record handling
    # ─────────────────────────────────────────────────────────────────────

    def _attempt(self, record: CandidateRecord) -> tuple[bool, str]:
        try:
            self.provision(record)
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            logger.error("Error creating user %s: %s", record.identity_key, message)
            return False, message
        return True, SUCCESS_MESSAGE

    def _complete(self, index: int, ok: bool, message: str) -> None:
        with self._lock:
            record = self._records[index]
            if ok:
                record.mark_success(message)
            else:
                record.mark_error(message)
            event = RecordCompletion(index, record.identity_key, record.status, message)

        for observer in self._observers:
            try:
                observer(event)
            except Exception:
                logger.exception("Progress observer failed for record %d", index)

    def _tally(self, cancelled: bool) -> ImportRunResult:
        with self._lock:
            statuses = [record.status for record in self._records]
        return ImportRunResult(
            total=len(statuses),
            success=sum(1 for status in statuses if status is RecordStatus.SUCCESS),
            failed=sum(1 for status in statuses if status is RecordStatus.ERROR),
            cancelled=cancelled,
        )

    def _emit_audit(self, result: ImportRunResult) -> None:
        if self.audit_sink is None:
            return
        details = f"Imported {result.success} users ({result.failed} failed)"
        try:
            self.audit_sink(
                BULK_IMPORT_ACTION,
                details,
                AUDIT_RESOURCE_TYPE,
                context=result.to_dict(),
            )
        except Exception as exc:
            logger.warning("Failed to write %s audit entry: %s", BULK_IMPORT_ACTION, exc)
