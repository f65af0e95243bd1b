"""Bulk account import pipeline.

Parser -> Normalizer/Validator -> Deduplicator -> (preview) -> Orchestrator -> Reporter

    from iam_import.core.bulk import BulkImportWorkflow, ImportFormat

    workflow = BulkImportWorkflow(provision=my_provision, audit_sink=my_audit)
    workflow.preview(text, ImportFormat.DELIMITED, default_entitlement="basic")
    reporter = workflow.commit()
    reporter.result  # ImportRunResult(total=..., success=..., failed=...)
"""
from .dedupe import dedupe
from .models import (
    CandidateRecord,
    ImportFormat,
    ImportParseError,
    ImportRunResult,
    RawRecord,
    RecordCompletion,
    RecordStatus,
)
from .normalizer import is_valid_identity_key, normalize, normalize_all
from .orchestrator import BULK_IMPORT_ACTION, ImportOrchestrator
from .parser import example_input, parse
from .reporter import ImportReporter
from .workflow import BulkImportWorkflow, NothingToImportError, TooManyRecordsError, build_candidates

__all__ = [
    "BULK_IMPORT_ACTION",
    "BulkImportWorkflow",
    "CandidateRecord",
    "ImportFormat",
    "ImportOrchestrator",
    "ImportParseError",
    "ImportReporter",
    "ImportRunResult",
    "NothingToImportError",
    "RawRecord",
    "RecordCompletion",
    "RecordStatus",
    "TooManyRecordsError",
    "build_candidates",
    "dedupe",
    "example_input",
    "is_valid_identity_key",
    "normalize",
    "normalize_all",
    "parse",
]
