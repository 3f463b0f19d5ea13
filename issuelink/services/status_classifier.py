"""Classify tracker tickets into remediation states."""

from __future__ import annotations

from datetime import date, datetime

from issuelink.db.enums import TicketProgress

IN_PROGRESS_MARKERS = ("progress", "development", "review")


def classify(
    status: str | None, resolution_date: datetime | date | str | None
) -> TicketProgress:
    """
    resolved when a resolution date is set, else in_progress when the status
    mentions progress, development or review, else open.
    """
    if resolution_date:
        return TicketProgress.RESOLVED
    lowered = (status or "").lower()
    if any(marker in lowered for marker in IN_PROGRESS_MARKERS):
        return TicketProgress.IN_PROGRESS
    return TicketProgress.OPEN
