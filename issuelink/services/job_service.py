"""Job service - business logic for background job scheduling and processing."""

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.orm import Session

from issuelink.db.enums import JobStatus, JobType
from issuelink.db.models import Job


def schedule_job(
    db: Session,
    org_id: UUID,
    job_type: JobType,
    payload: dict,
    run_at: datetime | None = None,
    max_attempts: int = 3,
) -> Job:
    """
    Schedule a new background job.

    If run_at is None, the job runs immediately.
    """
    job = Job(
        organization_id=org_id,
        job_type=job_type.value,
        payload=payload,
        run_at=run_at or datetime.now(timezone.utc),
        status=JobStatus.PENDING.value,
        max_attempts=max_attempts,
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    return job


def schedule_reconciliation(
    db: Session,
    org_id: UUID,
    *,
    full_recompute: bool = False,
    run_at: datetime | None = None,
) -> Job:
    """
    Queue a reconciliation run for an organization.

    A pending run for the same organization is reused; a full recompute
    request upgrades it.
    """
    existing = get_active_job(db, org_id, JobType.RECONCILE_LINKS, statuses=(JobStatus.PENDING,))
    if existing:
        if full_recompute and not existing.payload.get("full_recompute"):
            existing.payload = {**existing.payload, "full_recompute": True}
            db.commit()
            db.refresh(existing)
        return existing
    return schedule_job(
        db,
        org_id,
        JobType.RECONCILE_LINKS,
        {"organization_id": str(org_id), "full_recompute": full_recompute},
        run_at=run_at,
    )


def get_active_job(
    db: Session,
    org_id: UUID,
    job_type: JobType,
    statuses: tuple[JobStatus, ...] = (JobStatus.PENDING, JobStatus.RUNNING),
) -> Job | None:
    """Oldest job of this type for the org in one of the given statuses."""
    return (
        db.query(Job)
        .filter(
            Job.organization_id == org_id,
            Job.job_type == job_type.value,
            Job.status.in_([status.value for status in statuses]),
        )
        .order_by(Job.created_at)
        .first()
    )


def get_pending_jobs(db: Session, limit: int = 10) -> list[Job]:
    """
    Get pending jobs that are due to run.

    Returns jobs where status='pending' and run_at <= now, ordered by run_at.
    """
    now = datetime.now(timezone.utc)
    return (
        db.query(Job)
        .filter(
            Job.status == JobStatus.PENDING.value,
            Job.run_at <= now,
        )
        .order_by(Job.run_at)
        .limit(limit)
        .all()
    )


def list_jobs(
    db: Session,
    org_id: UUID,
    status: JobStatus | None = None,
    job_type: JobType | None = None,
    limit: int = 50,
) -> list[Job]:
    """List jobs for an organization with optional filters."""
    query = db.query(Job).filter(Job.organization_id == org_id)
    if status:
        query = query.filter(Job.status == status.value)
    if job_type:
        query = query.filter(Job.job_type == job_type.value)
    return query.order_by(Job.created_at.desc()).limit(limit).all()


def mark_job_running(db: Session, job: Job) -> Job:
    """Mark a job as running (increment attempts)."""
    job.status = JobStatus.RUNNING.value
    job.attempts += 1
    db.commit()
    db.refresh(job)
    return job


def mark_job_completed(db: Session, job: Job) -> Job:
    """Mark a job as completed."""
    job.status = JobStatus.COMPLETED.value
    job.completed_at = datetime.now(timezone.utc)
    job.last_error = None
    db.commit()
    db.refresh(job)
    return job


def mark_job_failed(db: Session, job: Job, error: str) -> Job:
    """
    Mark a job as failed.

    If attempts < max_attempts, reset to pending for retry.
    """
    job.last_error = error
    if job.attempts < job.max_attempts:
        job.status = JobStatus.PENDING.value
    else:
        job.status = JobStatus.FAILED.value
    db.commit()
    db.refresh(job)
    return job
