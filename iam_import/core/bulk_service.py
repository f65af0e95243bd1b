"""Wiring of the bulk import workflow to Keycloak and the audit trail.

Both the admin API and the CLI build their workflows here so that a commit
always provisions through provisioning_service and audits through
scripts.audit.
"""
from __future__ import annotations
from typing import Any, Optional
from uuid import uuid4

from iam_import.config import AppConfig, get_settings
from iam_import.core import provisioning_service
from iam_import.core.bulk import BulkImportWorkflow, CandidateRecord
from scripts import audit


def provision_candidate(record: CandidateRecord, correlation_id: Optional[str] = None) -> str:
    """Create the account described by one candidate record."""
    return provisioning_service.create_account(
        record.identity_key,
        record.display_name,
        record.role_tag,
        record.entitlement_tag,
        correlation_id=correlation_id,
    )


def make_audit_sink(operator: str, realm: str, correlation_id: Optional[str] = None):
    """Return an audit sink writing to the signed admin audit log.

    The sink raises on write failure; the orchestrator decides what a failed
    audit write means for the run.
    """
    def record(action: str, details: str, resource_type: str, context: Optional[dict[str, Any]] = None) -> None:
        payload = dict(context or {})
        if correlation_id:
            payload["correlation_id"] = correlation_id
        audit.log_admin_action(
            action,
            details,
            resource_type,
            operator=operator,
            realm=realm,
            context=payload,
            success=not payload.get("failed"),
        )

    return record


def build_workflow(
    operator: str,
    cfg: Optional[AppConfig] = None,
    correlation_id: Optional[str] = None,
    **overrides,
) -> BulkImportWorkflow:
    """Workflow provisioning into the configured realm on behalf of ``operator``."""
    cfg = cfg or get_settings()
    correlation_id = correlation_id or str(uuid4())

    def provision(record: CandidateRecord) -> str:
        return provision_candidate(record, correlation_id=correlation_id)

    return BulkImportWorkflow.from_settings(
        cfg,
        provision,
        make_audit_sink(operator, cfg.keycloak_realm, correlation_id),
        **overrides,
    )
