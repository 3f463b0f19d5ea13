"""Structured logging helpers."""

from typing import Any


def build_log_context(
    *,
    org_id: str | None = None,
    run_id: str | None = None,
    job_id: str | None = None,
    ticket_id: str | None = None,
    route: str | None = None,
) -> dict[str, Any]:
    """Return a log context dict for ``extra=``."""
    context: dict[str, Any] = {}
    if org_id:
        context["org_id"] = org_id
    if run_id:
        context["run_id"] = run_id
    if job_id:
        context["job_id"] = job_id
    if ticket_id:
        context["ticket_id"] = ticket_id
    if route:
        context["route"] = route
    return context
