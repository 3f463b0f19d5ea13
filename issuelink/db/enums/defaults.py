"""Centralized defaults for enums."""

from issuelink.db.enums.jobs import JobStatus


DEFAULT_JOB_STATUS: JobStatus = JobStatus.PENDING
