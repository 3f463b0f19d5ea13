"""Status rollups per account and per theme over a trailing window."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable
from uuid import UUID

from pydantic import ValidationError

from issuelink.db.enums import TicketProgress
from issuelink.schemas.records import CaseRecord, TicketRecord
from issuelink.services.repository import ReconciliationRepository
from issuelink.services.status_classifier import classify
from issuelink.utils.datetime_parsing import coerce_utc_datetime

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_DAYS = 30


@dataclass(frozen=True)
class Rollup:
    resolved_recent: int = 0
    in_progress: int = 0
    open: int = 0
    total_issues: int = 0
    fix_rate_window: int = 0


EMPTY_ROLLUP = Rollup()


def summarize(
    tickets: Iterable[TicketRecord],
    *,
    extra_open: int = 0,
    now: datetime | None = None,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> Rollup:
    """
    Roll tickets up into counts.

    extra_open adds issue units that have no ticket yet (ticketless themes).
    total_issues counts resolved tickets regardless of when they resolved.
    """
    now = coerce_utc_datetime(now) if now else datetime.now(timezone.utc)
    window_start = now - timedelta(days=window_days)

    resolved_total = resolved_recent = in_progress = open_count = 0
    for ticket in tickets:
        progress = classify(ticket.status, ticket.resolution_date)
        if progress == TicketProgress.RESOLVED:
            resolved_total += 1
            resolved_at = coerce_utc_datetime(ticket.resolution_date)
            if resolved_at is not None and resolved_at >= window_start:
                resolved_recent += 1
        elif progress == TicketProgress.IN_PROGRESS:
            in_progress += 1
        else:
            open_count += 1

    open_count += extra_open
    return Rollup(
        resolved_recent=resolved_recent,
        in_progress=in_progress,
        open=open_count,
        total_issues=resolved_total + in_progress + open_count,
        fix_rate_window=resolved_recent,
    )


def _valid_tickets(rows: Iterable[Any]) -> dict[str, TicketRecord]:
    tickets: dict[str, TicketRecord] = {}
    for row in rows:
        try:
            ticket = TicketRecord.model_validate(row, from_attributes=True)
        except ValidationError as exc:
            logger.warning("Skipping malformed ticket in rollup: %s", exc.errors()[0]["msg"])
            continue
        tickets[ticket.id] = ticket
    return tickets


def _valid_cases(rows: Iterable[Any]) -> list[CaseRecord]:
    cases: list[CaseRecord] = []
    for row in rows:
        try:
            cases.append(CaseRecord.model_validate(row, from_attributes=True))
        except ValidationError:
            logger.warning("Skipping malformed case in rollup")
    return cases


def get_account_rollup(
    repository: ReconciliationRepository,
    org_id: UUID,
    account_id: str,
    *,
    now: datetime | None = None,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> Rollup:
    """Rollup for one account; unknown or empty accounts give all zeros."""
    rollups = get_account_rollups(
        repository, org_id, account_ids=[account_id], now=now, window_days=window_days
    )
    return rollups.get(account_id, EMPTY_ROLLUP)


def get_account_rollups(
    repository: ReconciliationRepository,
    org_id: UUID,
    *,
    account_ids: Iterable[str] | None = None,
    now: datetime | None = None,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> dict[str, Rollup]:
    """
    Rollups for many accounts with one pass over the repository.

    With account_ids=None every account that has links or themed cases is
    included.
    """
    wanted = set(account_ids) if account_ids is not None else None
    if wanted is not None and len(wanted) == 1:
        (only,) = wanted
        links = repository.list_links(org_id, account_id=only)
        cases = _valid_cases(repository.list_cases(org_id, account_id=only))
    else:
        links = repository.list_links(org_id)
        cases = _valid_cases(repository.list_cases(org_id))

    ticket_ids_by_account: dict[str, set[str]] = defaultdict(set)
    for link in links:
        if wanted is None or link.account_id in wanted:
            ticket_ids_by_account[link.account_id].add(link.ticket_id)

    themes_by_account: dict[str, set[str]] = defaultdict(set)
    for case in cases:
        if case.account_id and case.theme_key and (wanted is None or case.account_id in wanted):
            themes_by_account[case.account_id].add(case.theme_key)

    linked_themes = (
        {theme_link.theme_key for theme_link in repository.list_theme_links(org_id)}
        if themes_by_account
        else set()
    )

    all_ticket_ids: set[str] = set().union(*ticket_ids_by_account.values())
    tickets = (
        _valid_tickets(repository.list_tickets(org_id, ticket_ids=all_ticket_ids))
        if all_ticket_ids
        else {}
    )

    rollups: dict[str, Rollup] = {}
    for account_id in set(ticket_ids_by_account) | set(themes_by_account):
        ticketless = themes_by_account.get(account_id, set()) - linked_themes
        rollups[account_id] = summarize(
            (tickets[tid] for tid in ticket_ids_by_account.get(account_id, ()) if tid in tickets),
            extra_open=len(ticketless),
            now=now,
            window_days=window_days,
        )
    if wanted is not None:
        for account_id in wanted:
            rollups.setdefault(account_id, EMPTY_ROLLUP)
    return rollups


def get_theme_rollup(
    repository: ReconciliationRepository,
    org_id: UUID,
    theme_key: str,
    *,
    now: datetime | None = None,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> Rollup:
    """Rollup over a theme's linked tickets, or one open unit if it has none yet."""
    theme_links = repository.list_theme_links(org_id, theme_key=theme_key)
    ticket_ids = {theme_link.ticket_id for theme_link in theme_links}
    if ticket_ids:
        tickets = _valid_tickets(repository.list_tickets(org_id, ticket_ids=ticket_ids))
        return summarize(tickets.values(), now=now, window_days=window_days)

    cases = _valid_cases(repository.list_cases(org_id))
    observed = any(case.theme_key == theme_key for case in cases)
    if not observed:
        return EMPTY_ROLLUP
    return summarize([], extra_open=1, now=now, window_days=window_days)
