"""Read-only view of a commit run for progress display."""
from __future__ import annotations
import threading
from typing import Callable, Iterable, Optional

from .models import CandidateRecord, ImportRunResult, RecordCompletion, RecordStatus


class ImportReporter:
    """Keeps its own copy of the candidate list, updated from completion events.

    Attach it with ``orchestrator.subscribe(reporter.on_completion)`` and call
    ``finalize`` with the orchestrator's result once ``run`` returns.
    """

    def __init__(self, candidates: Iterable[CandidateRecord], on_update: Optional[Callable[[RecordCompletion], None]] = None):
        self._records = [candidate.copy() for candidate in candidates]
        self._result: Optional[ImportRunResult] = None
        self._on_update = on_update
        self._lock = threading.Lock()

    def on_completion(self, event: RecordCompletion) -> None:
        with self._lock:
            record = self._records[event.index]
            record.status = event.status
            record.status_message = event.message
        if self._on_update is not None:
            self._on_update(event)

    def finalize(self, result: ImportRunResult) -> ImportRunResult:
        with self._lock:
            self._result = result
        return result

    def records(self) -> list[CandidateRecord]:
        with self._lock:
            return [record.copy() for record in self._records]

    @property
    def result(self) -> Optional[ImportRunResult]:
        return self._result

    @property
    def is_complete(self) -> bool:
        return self._result is not None

    def progress(self) -> dict:
        """Counts by status, usable while the run is still going."""
        with self._lock:
            statuses = [record.status for record in self._records]
        return {
            "total": len(statuses),
            "pending": statuses.count(RecordStatus.PENDING),
            "success": statuses.count(RecordStatus.SUCCESS),
            "failed": statuses.count(RecordStatus.ERROR),
        }

    def to_dict(self) -> dict:
        return {
            "records": [record.to_dict() for record in self.records()],
            "progress": self.progress(),
            "result": self._result.to_dict() if self._result else None,
        }
