"""Job handler registry."""

from __future__ import annotations

from typing import Awaitable, Callable, Mapping

from issuelink.db.enums import JobType
from issuelink.jobs.handlers import reconciliation

JobHandler = Callable[[object, object], Awaitable[None]]

JOB_HANDLERS: Mapping[str, JobHandler] = {
    JobType.RECONCILE_LINKS.value: reconciliation.process_reconcile_links,
}


def resolve_job_handler(job_type: str) -> JobHandler:
    handler = JOB_HANDLERS.get(job_type)
    if not handler:
        raise ValueError(f"Unknown job type: {job_type}")
    return handler
