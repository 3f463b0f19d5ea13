"""Reconciliation service - tenant runs that derive and persist links.

A run loads the tenant's accounts, cases, tickets and themes through a
repository, evaluates every ticket (identifier extraction, theme linking, the
strategy chain, the domain filter) on a bounded thread pool, then deduplicates
and writes the results in retried batches on the calling thread.
"""

from __future__ import annotations

import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Sequence
from uuid import UUID

from pydantic import ValidationError

from issuelink.core.structured_logging import build_log_context
from issuelink.core.tenant_lock import tenant_lock
from issuelink.db.enums import Domain, LinkStrategy, RunStatus
from issuelink.schemas.records import AccountRecord, CaseRecord, ThemeRecord, TicketRecord
from issuelink.services.case_index import CaseIndex
from issuelink.services.domain_filter import DomainFilter, DomainRules, Rejection, ticket_domain
from issuelink.services.identifier_extractor import (
    ExtractedIdentifier,
    extract_identifiers,
    validate_field_specs,
)
from issuelink.services.link_writer import (
    FailedBatch,
    LinkWriter,
    deduplicate_links,
    deduplicate_theme_links,
)
from issuelink.services.match_strategies import (
    DEFAULT_STRATEGIES,
    AccountDirectory,
    LinkCandidate,
    MatchContext,
    MatchStrategy,
    run_chain,
)
from issuelink.services.repository import ReconciliationRepository, StoredLink
from issuelink.services.theme_linker import ThemeLinkCandidate, ThemeLinker
from issuelink.utils.normalization import identifier_variants

logger = logging.getLogger(__name__)


class PartialReconciliationError(RuntimeError):
    """Raised by callers that treat a partial run as a failure (job retries)."""

    def __init__(self, report: "RunReport"):
        super().__init__(
            f"Reconciliation run {report.run_id} left {len(report.failed_batches)} "
            "batch(es) unwritten"
        )
        self.report = report


# =============================================================================
# Configuration
# =============================================================================


@dataclass(frozen=True)
class ReconciliationConfig:
    identifier_fields: tuple[str, ...]
    client_name_field: str
    domain_rules: DomainRules
    batch_size: int = 100
    max_attempts: int = 3
    retry_base_delay: float = 0.5
    retry_max_delay: float = 4.0
    max_workers: int = 4
    lock_timeout_seconds: float | None = 600.0

    def __post_init__(self) -> None:
        validate_field_specs(self.identifier_fields)

    @classmethod
    def from_settings(cls, app_settings: Any = None) -> "ReconciliationConfig":
        if app_settings is None:
            from issuelink.core.config import settings as app_settings
        return cls(
            identifier_fields=tuple(app_settings.IDENTIFIER_FIELDS),
            client_name_field=app_settings.CLIENT_NAME_FIELD,
            domain_rules=DomainRules.from_mappings(
                project_prefixes=app_settings.DOMAIN_PROJECT_PREFIXES,
                shared_prefixes=app_settings.SHARED_PROJECT_PREFIXES,
                account_keywords=app_settings.DOMAIN_ACCOUNT_KEYWORDS,
                product_lines=app_settings.PRODUCT_LINE_PREFIXES,
            ),
            batch_size=app_settings.LINK_WRITE_BATCH_SIZE,
            max_attempts=app_settings.LINK_WRITE_MAX_ATTEMPTS,
            retry_base_delay=app_settings.LINK_WRITE_RETRY_BASE_DELAY,
            retry_max_delay=app_settings.LINK_WRITE_RETRY_MAX_DELAY,
            max_workers=app_settings.RECONCILE_MAX_WORKERS,
            lock_timeout_seconds=app_settings.RECONCILE_LOCK_TIMEOUT_SECONDS,
        )


# =============================================================================
# Run report
# =============================================================================


@dataclass(frozen=True)
class SkippedRecord:
    kind: str
    record_id: str
    reason: str


@dataclass(frozen=True)
class RejectedCandidate:
    account_id: str
    ticket_id: str
    strategy: LinkStrategy
    confidence: float
    reason: str


@dataclass
class RunReport:
    org_id: UUID
    run_id: str
    full_recompute: bool = False
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    tickets_seen: int = 0
    tickets_processed: int = 0
    skipped: list[SkippedRecord] = field(default_factory=list)
    candidates_total: int = 0
    rejected: list[RejectedCandidate] = field(default_factory=list)
    links_written: int = 0
    theme_links_written: int = 0
    links_discarded: int = 0
    links_pruned: int = 0
    theme_links_pruned: int = 0
    links_wiped: int = 0
    theme_links_wiped: int = 0
    failed_batches: list[FailedBatch] = field(default_factory=list)
    status: RunStatus = RunStatus.COMPLETED

    @property
    def is_partial(self) -> bool:
        return self.status == RunStatus.PARTIAL

    def skip(self, kind: str, record_id: str, reason: str) -> None:
        self.skipped.append(SkippedRecord(kind=kind, record_id=record_id, reason=reason))


# =============================================================================
# Inputs and per-ticket evaluation
# =============================================================================


@dataclass(frozen=True)
class RunInputs:
    accounts: dict[str, AccountRecord]
    tickets: list[TicketRecord]
    case_index: CaseIndex
    theme_linker: ThemeLinker
    directory: AccountDirectory


@dataclass(frozen=True)
class TicketOutcome:
    ticket: TicketRecord
    ticket_domain: Domain
    identifiers: tuple[ExtractedIdentifier, ...]
    index_hits: tuple[tuple[str, str, str | None], ...]
    theme_links: tuple[ThemeLinkCandidate, ...]
    strategy: LinkStrategy | None
    candidates: tuple[LinkCandidate, ...]
    accepted: tuple[LinkCandidate, ...]
    rejected: tuple[Rejection, ...]


def _record_id(row: Any, attr: str = "id") -> str:
    value = row.get(attr) if isinstance(row, dict) else getattr(row, attr, None)
    return str(value) if value is not None else "<missing>"


def _validation_reason(exc: ValidationError) -> str:
    error = exc.errors()[0]
    location = ".".join(str(part) for part in error.get("loc", ()))
    return f"{location}: {error['msg']}" if location else error["msg"]


def _validate_rows(
    rows: Iterable[Any],
    model: type,
    kind: str,
    report: RunReport | None,
    *,
    id_attr: str = "id",
    log_extra: dict | None = None,
) -> list:
    valid = []
    for row in rows:
        try:
            valid.append(model.model_validate(row, from_attributes=True))
        except ValidationError as exc:
            record_id = _record_id(row, id_attr)
            reason = _validation_reason(exc)
            logger.warning(
                "Skipping malformed %s %s: %s", kind, record_id, reason, extra=log_extra or {}
            )
            if report is not None:
                report.skip(kind, record_id, reason)
    return valid


def load_inputs(
    repository: ReconciliationRepository,
    org_id: UUID,
    *,
    report: RunReport | None = None,
    ticket_ids: Sequence[str] | None = None,
    log_extra: dict | None = None,
) -> RunInputs:
    """Load and validate a tenant's records and build the run indices."""
    accounts = {
        account.id: account
        for account in _validate_rows(
            repository.list_accounts(org_id), AccountRecord, "account", report, log_extra=log_extra
        )
    }
    cases: list[CaseRecord] = _validate_rows(
        repository.list_cases(org_id), CaseRecord, "case", report, log_extra=log_extra
    )
    themes: list[ThemeRecord] = _validate_rows(
        repository.list_themes(org_id),
        ThemeRecord,
        "theme",
        report,
        id_attr="key",
        log_extra=log_extra,
    )
    ticket_rows = (
        repository.list_tickets(org_id)
        if ticket_ids is None
        else repository.list_tickets(org_id, ticket_ids=ticket_ids)
    )
    if report is not None:
        report.tickets_seen = len(ticket_rows)
    tickets: list[TicketRecord] = _validate_rows(
        ticket_rows, TicketRecord, "ticket", report, log_extra=log_extra
    )

    case_index = CaseIndex(cases)
    theme_keys = {theme.key for theme in themes} | set(case_index.theme_keys)
    return RunInputs(
        accounts=accounts,
        tickets=tickets,
        case_index=case_index,
        theme_linker=ThemeLinker(theme_keys),
        directory=AccountDirectory.build(accounts),
    )


def evaluate_ticket(
    ticket: TicketRecord,
    inputs: RunInputs,
    config: ReconciliationConfig,
    domain_filter: DomainFilter,
    strategies: Sequence[MatchStrategy] = DEFAULT_STRATEGIES,
) -> TicketOutcome:
    """Everything a run decides about one ticket, without writing anything."""
    identifiers = extract_identifiers(ticket, config.identifier_fields)

    index_hits: list[tuple[str, str, str | None]] = []
    matched_cases: list[CaseRecord] = []
    for extracted in identifiers:
        case = inputs.case_index.lookup_case(extracted.identifier)
        if case is None:
            continue
        index_hits.append((extracted.identifier, case.id, case.account_id))
        if case not in matched_cases:
            matched_cases.append(case)

    theme_links = inputs.theme_linker.link(ticket, matched_cases)
    context = MatchContext(
        case_index=inputs.case_index,
        directory=inputs.directory,
        identifiers=identifiers,
        theme_links=theme_links,
        client_name_field=config.client_name_field,
    )
    strategy, candidates = run_chain(strategies, ticket, context)
    accepted, rejected = domain_filter.apply(candidates, ticket.external_key)

    return TicketOutcome(
        ticket=ticket,
        ticket_domain=ticket_domain(ticket.external_key, config.domain_rules),
        identifiers=tuple(identifiers),
        index_hits=tuple(index_hits),
        theme_links=tuple(theme_links),
        strategy=strategy,
        candidates=tuple(candidates),
        accepted=tuple(accepted),
        rejected=tuple(rejected),
    )


def _evaluate_all(
    inputs: RunInputs,
    config: ReconciliationConfig,
    strategies: Sequence[MatchStrategy],
    report: RunReport,
    log_extra: dict,
) -> list[TicketOutcome]:
    domain_filter = DomainFilter(config.domain_rules, inputs.accounts)

    def evaluate(ticket: TicketRecord) -> TicketOutcome | str:
        try:
            return evaluate_ticket(ticket, inputs, config, domain_filter, strategies)
        except Exception as exc:
            logger.exception(
                "Ticket %s failed evaluation",
                ticket.id,
                extra={**log_extra, "ticket_id": ticket.id},
            )
            return f"{exc.__class__.__name__}: {exc}"

    if config.max_workers > 1 and len(inputs.tickets) > 1:
        with ThreadPoolExecutor(
            max_workers=config.max_workers, thread_name_prefix="reconcile"
        ) as pool:
            results = list(pool.map(evaluate, inputs.tickets))
    else:
        results = [evaluate(ticket) for ticket in inputs.tickets]

    outcomes: list[TicketOutcome] = []
    for ticket, result in zip(inputs.tickets, results):
        if isinstance(result, str):
            report.skip("ticket", ticket.id, result)
        else:
            outcomes.append(result)
    return outcomes


# =============================================================================
# Public operations
# =============================================================================


def reconcile_tenant(
    repository: ReconciliationRepository,
    org_id: UUID,
    *,
    full_recompute: bool = False,
    config: ReconciliationConfig | None = None,
    strategies: Sequence[MatchStrategy] = DEFAULT_STRATEGIES,
    sleep: Callable[[float], None] = time.sleep,
    run_id: str | None = None,
) -> RunReport:
    """
    Run reconciliation for one organization.

    Holds the tenant lock for the whole run and raises
    ReconciliationInProgressError if it cannot be acquired in time. Failed
    write batches do not raise: the report comes back with status partial
    and committed batches stay in place. Stale links are pruned only for
    tickets evaluated in this run and only when every batch committed.
    """
    config = config or ReconciliationConfig.from_settings()
    report = RunReport(
        org_id=org_id, run_id=run_id or uuid.uuid4().hex, full_recompute=full_recompute
    )
    log_extra = build_log_context(org_id=str(org_id), run_id=report.run_id)

    with tenant_lock(org_id, blocking_timeout=config.lock_timeout_seconds):
        logger.info(
            "Reconciliation started (full_recompute=%s)", full_recompute, extra=log_extra
        )
        if full_recompute:
            report.links_wiped, report.theme_links_wiped = repository.wipe_links(org_id)

        inputs = load_inputs(repository, org_id, report=report, log_extra=log_extra)
        outcomes = _evaluate_all(inputs, config, strategies, report, log_extra)
        report.tickets_processed = len(outcomes)

        theme_candidates: list[ThemeLinkCandidate] = []
        accepted: list[LinkCandidate] = []
        for outcome in outcomes:
            theme_candidates.extend(outcome.theme_links)
            accepted.extend(outcome.accepted)
            report.candidates_total += len(outcome.candidates)
            report.rejected.extend(
                RejectedCandidate(
                    account_id=rejection.candidate.account_id,
                    ticket_id=rejection.candidate.ticket_id,
                    strategy=rejection.candidate.strategy,
                    confidence=rejection.candidate.confidence,
                    reason=rejection.reason,
                )
                for rejection in outcome.rejected
            )

        links, discarded = deduplicate_links(accepted)
        theme_links, _ = deduplicate_theme_links(theme_candidates)
        report.links_discarded = len(discarded)

        writer = LinkWriter(
            repository,
            org_id,
            batch_size=config.batch_size,
            max_attempts=config.max_attempts,
            base_delay=config.retry_base_delay,
            max_delay=config.retry_max_delay,
            sleep=sleep,
            log_extra=log_extra,
        )
        theme_outcome = writer.write_theme_links(theme_links)
        link_outcome = writer.write_links(links)
        report.theme_links_written = theme_outcome.written
        report.links_written = link_outcome.written
        report.failed_batches = theme_outcome.failed_batches + link_outcome.failed_batches

        if report.failed_batches:
            report.status = RunStatus.PARTIAL
        elif outcomes and not full_recompute:
            processed = [outcome.ticket.id for outcome in outcomes]
            report.links_pruned = repository.delete_links_for_tickets(
                org_id, processed, keep={link.pair for link in links}
            )
            report.theme_links_pruned = repository.delete_theme_links_for_tickets(
                org_id,
                processed,
                keep={(link.theme_key, link.ticket_id) for link in theme_links},
            )

    report.finished_at = datetime.now(timezone.utc)
    logger.info(
        "Reconciliation %s: %s tickets, %s links, %s theme links, %s rejected, "
        "%s skipped, %s pruned",
        report.status.value,
        report.tickets_processed,
        report.links_written,
        report.theme_links_written,
        len(report.rejected),
        len(report.skipped),
        report.links_pruned,
        extra=log_extra,
    )
    return report


def wipe_tenant_links(
    repository: ReconciliationRepository,
    org_id: UUID,
    *,
    config: ReconciliationConfig | None = None,
) -> tuple[int, int]:
    """Delete all links and theme links of an organization under the tenant lock."""
    config = config or ReconciliationConfig.from_settings()
    with tenant_lock(org_id, blocking_timeout=config.lock_timeout_seconds):
        links, theme_links = repository.wipe_links(org_id)
    logger.info(
        "Wiped %s links and %s theme links",
        links,
        theme_links,
        extra=build_log_context(org_id=str(org_id)),
    )
    return links, theme_links


def list_links(
    repository: ReconciliationRepository,
    org_id: UUID,
    *,
    account_id: str | None = None,
    ticket_id: str | None = None,
) -> list[StoredLink]:
    """Persisted links with strategy and confidence, optionally filtered."""
    return repository.list_links(org_id, account_id=account_id, ticket_id=ticket_id)


@dataclass(frozen=True)
class TicketDiagnosis:
    ticket_id: str
    error: str | None = None
    outcome: TicketOutcome | None = None
    stored_links: tuple[StoredLink, ...] = ()
    ambiguous_identifiers: tuple[str, ...] = ()


def diagnose_ticket(
    repository: ReconciliationRepository,
    org_id: UUID,
    ticket_id: str,
    *,
    config: ReconciliationConfig | None = None,
    strategies: Sequence[MatchStrategy] = DEFAULT_STRATEGIES,
) -> TicketDiagnosis | None:
    """
    Explain how a run would treat one ticket, without writing.

    Returns None when the ticket does not exist. A malformed ticket comes back
    with error set and no outcome.
    """
    config = config or ReconciliationConfig.from_settings()
    report = RunReport(org_id=org_id, run_id="diagnose")
    inputs = load_inputs(repository, org_id, report=report, ticket_ids=[ticket_id])
    stored = tuple(repository.list_links(org_id, ticket_id=ticket_id))

    if not inputs.tickets:
        skipped = [s for s in report.skipped if s.kind == "ticket" and s.record_id == ticket_id]
        if report.tickets_seen == 0:
            return None
        reason = skipped[0].reason if skipped else "invalid ticket"
        return TicketDiagnosis(ticket_id=ticket_id, error=reason, stored_links=stored)

    domain_filter = DomainFilter(config.domain_rules, inputs.accounts)
    outcome = evaluate_ticket(inputs.tickets[0], inputs, config, domain_filter, strategies)
    # Identifiers claimed by cases of two accounts never resolve.
    ambiguous = inputs.case_index.ambiguous
    flagged = tuple(
        dict.fromkeys(
            extracted.identifier
            for extracted in outcome.identifiers
            if inputs.case_index.lookup_case(extracted.identifier) is None
            and ambiguous.intersection(identifier_variants(extracted.identifier))
        )
    )
    return TicketDiagnosis(
        ticket_id=ticket_id,
        outcome=outcome,
        stored_links=stored,
        ambiguous_identifiers=flagged,
    )
