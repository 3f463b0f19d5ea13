"""
Internal endpoints for reconciliation runs, link diagnostics and rollups.

Protected by X-Internal-Secret header.
Call from external cron or support tooling.
"""
from dataclasses import replace
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from issuelink.core.config import settings
from issuelink.core.deps import get_db, verify_internal_secret
from issuelink.core.tenant_lock import ReconciliationInProgressError
from issuelink.db.enums import JobStatus, JobType
from issuelink.db.models import Organization
from issuelink.schemas.reconciliation import (
    JobListItem,
    JobQueuedResponse,
    LinkRead,
    ReconcileRequest,
    RollupRead,
    RunReportRead,
    TicketDiagnosisRead,
    WipeResponse,
)
from issuelink.services import job_service, reconciliation_service, rollup_service
from issuelink.services.sql_repository import SqlAlchemyRepository


router = APIRouter(
    prefix="/internal/reconciliation",
    tags=["internal"],
    dependencies=[Depends(verify_internal_secret)],
)


def _get_org_or_404(db: Session, org_id: UUID) -> Organization:
    org = db.get(Organization, org_id)
    if not org:
        raise HTTPException(status_code=404, detail="Organization not found")
    return org


def _request_config() -> reconciliation_service.ReconciliationConfig:
    # Requests never queue behind a running reconciliation.
    return replace(
        reconciliation_service.ReconciliationConfig.from_settings(), lock_timeout_seconds=0
    )


@router.post("/organizations/{org_id}/run", response_model=RunReportRead)
def run_reconciliation(
    org_id: UUID,
    body: ReconcileRequest | None = None,
    db: Session = Depends(get_db),
):
    """Run reconciliation synchronously and return the run report."""
    _get_org_or_404(db, org_id)
    full_recompute = body.full_recompute if body else False
    try:
        report = reconciliation_service.reconcile_tenant(
            SqlAlchemyRepository(db),
            org_id,
            full_recompute=full_recompute,
            config=_request_config(),
        )
    except ReconciliationInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return RunReportRead.model_validate(report)


@router.post("/organizations/{org_id}/enqueue", response_model=JobQueuedResponse)
def enqueue_reconciliation(
    org_id: UUID,
    body: ReconcileRequest | None = None,
    db: Session = Depends(get_db),
):
    """Queue a reconciliation job for the worker."""
    _get_org_or_404(db, org_id)
    job = job_service.schedule_reconciliation(
        db, org_id, full_recompute=body.full_recompute if body else False
    )
    return JobQueuedResponse(
        job_id=job.id,
        status=job.status,
        full_recompute=bool(job.payload.get("full_recompute")),
    )


@router.get("/organizations/{org_id}/jobs", response_model=list[JobListItem])
def list_jobs(
    org_id: UUID,
    status: JobStatus | None = None,
    job_type: JobType | None = None,
    limit: int = 50,
    db: Session = Depends(get_db),
):
    """Recent reconciliation jobs of the organization, newest first."""
    _get_org_or_404(db, org_id)
    return job_service.list_jobs(
        db, org_id, status=status, job_type=job_type, limit=min(limit, 100)
    )


@router.post("/organizations/{org_id}/wipe", response_model=WipeResponse)
def wipe_links(org_id: UUID, db: Session = Depends(get_db)):
    """Delete every link and theme link of the organization."""
    _get_org_or_404(db, org_id)
    try:
        links, theme_links = reconciliation_service.wipe_tenant_links(
            SqlAlchemyRepository(db), org_id, config=_request_config()
        )
    except ReconciliationInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return WipeResponse(links_deleted=links, theme_links_deleted=theme_links)


@router.get("/organizations/{org_id}/links", response_model=list[LinkRead])
def list_links(
    org_id: UUID,
    account_id: str | None = None,
    ticket_id: str | None = None,
    db: Session = Depends(get_db),
):
    """Persisted links with strategy and confidence."""
    _get_org_or_404(db, org_id)
    links = reconciliation_service.list_links(
        SqlAlchemyRepository(db), org_id, account_id=account_id, ticket_id=ticket_id
    )
    return [LinkRead.model_validate(link) for link in links]


@router.get("/organizations/{org_id}/accounts/{account_id}/rollup", response_model=RollupRead)
def account_rollup(org_id: UUID, account_id: str, db: Session = Depends(get_db)):
    _get_org_or_404(db, org_id)
    rollup = rollup_service.get_account_rollup(
        SqlAlchemyRepository(db), org_id, account_id, window_days=settings.ROLLUP_WINDOW_DAYS
    )
    return RollupRead.model_validate(rollup)


@router.get("/organizations/{org_id}/themes/{theme_key}/rollup", response_model=RollupRead)
def theme_rollup(org_id: UUID, theme_key: str, db: Session = Depends(get_db)):
    _get_org_or_404(db, org_id)
    rollup = rollup_service.get_theme_rollup(
        SqlAlchemyRepository(db), org_id, theme_key, window_days=settings.ROLLUP_WINDOW_DAYS
    )
    return RollupRead.model_validate(rollup)


@router.get(
    "/organizations/{org_id}/tickets/{ticket_id}/diagnosis",
    response_model=TicketDiagnosisRead,
)
def diagnose_ticket(org_id: UUID, ticket_id: str, db: Session = Depends(get_db)):
    """Explain how reconciliation treats one ticket, without writing."""
    _get_org_or_404(db, org_id)
    diagnosis = reconciliation_service.diagnose_ticket(SqlAlchemyRepository(db), org_id, ticket_id)
    if diagnosis is None:
        raise HTTPException(status_code=404, detail="Ticket not found")
    return TicketDiagnosisRead.from_diagnosis(diagnosis)
