"""Enum definitions for application constants."""

from issuelink.db.enums.defaults import DEFAULT_JOB_STATUS
from issuelink.db.enums.jobs import JobStatus, JobType
from issuelink.db.enums.links import (
    Domain,
    LinkStrategy,
    RunStatus,
    ThemeMatchType,
    TicketProgress,
)

__all__ = [
    "DEFAULT_JOB_STATUS",
    "Domain",
    "JobStatus",
    "JobType",
    "LinkStrategy",
    "RunStatus",
    "ThemeMatchType",
    "TicketProgress",
]
