"""Reconciliation job handlers."""

from __future__ import annotations

import logging
from uuid import UUID

import anyio

from issuelink.core.structured_logging import build_log_context

logger = logging.getLogger(__name__)


async def process_reconcile_links(db, job) -> None:
    """
    Run reconciliation for the job's organization.

    Payload:
        - organization_id: tenant to reconcile (defaults to the job's org)
        - full_recompute: wipe the tenant's links before recomputing

    A partial run raises PartialReconciliationError so the job is retried.
    """
    from issuelink.services import reconciliation_service
    from issuelink.services.sql_repository import SqlAlchemyRepository

    payload = job.payload or {}
    raw_org_id = payload.get("organization_id") or job.organization_id
    org_id = raw_org_id if isinstance(raw_org_id, UUID) else UUID(str(raw_org_id))
    if org_id != job.organization_id:
        raise ValueError("Job payload organization does not match job organization")
    full_recompute = bool(payload.get("full_recompute", False))

    repository = SqlAlchemyRepository(db)
    report = await anyio.to_thread.run_sync(
        lambda: reconciliation_service.reconcile_tenant(
            repository,
            org_id,
            full_recompute=full_recompute,
            run_id=f"job-{job.id}",
        )
    )
    if report.is_partial:
        raise reconciliation_service.PartialReconciliationError(report)

    logger.info(
        "Reconcile job finished: %s links written, %s pruned",
        report.links_written,
        report.links_pruned,
        extra=build_log_context(org_id=str(org_id), job_id=str(job.id), run_id=report.run_id),
    )
