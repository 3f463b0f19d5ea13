"""Pydantic schemas for reconciliation runs, links and rollups."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class ReconcileRequest(BaseModel):
    """Trigger a reconciliation run."""
    full_recompute: bool = False


class SkippedRecordRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: str
    record_id: str
    reason: str


class RejectedCandidateRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    account_id: str
    ticket_id: str
    strategy: str
    confidence: float
    reason: str


class FailedBatchRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    kind: str
    index: int
    size: int
    error: str


class RunReportRead(BaseModel):
    """Outcome of one reconciliation run."""
    model_config = ConfigDict(from_attributes=True)

    org_id: UUID
    run_id: str
    full_recompute: bool
    status: str
    started_at: datetime
    finished_at: datetime | None
    tickets_seen: int
    tickets_processed: int
    candidates_total: int
    links_written: int
    theme_links_written: int
    links_discarded: int
    links_pruned: int
    theme_links_pruned: int
    links_wiped: int
    theme_links_wiped: int
    skipped: list[SkippedRecordRead]
    rejected: list[RejectedCandidateRead]
    failed_batches: list[FailedBatchRead]


class WipeResponse(BaseModel):
    links_deleted: int
    theme_links_deleted: int


class LinkRead(BaseModel):
    """Persisted account <-> ticket link."""
    model_config = ConfigDict(from_attributes=True)

    account_id: str
    ticket_id: str
    strategy: str
    confidence: float
    evidence: dict = {}


class ThemeLinkRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    theme_key: str
    ticket_id: str
    match_type: str
    confidence: float


class RollupRead(BaseModel):
    """Status rollup over the trailing window."""
    model_config = ConfigDict(from_attributes=True)

    resolved_recent: int
    in_progress: int
    open: int
    total_issues: int
    fix_rate_window: int


class ExtractedIdentifierRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    identifier: str
    source_field: str


class IndexHitRead(BaseModel):
    identifier: str
    case_id: str
    account_id: str | None


class LinkCandidateRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    account_id: str
    ticket_id: str
    strategy: str
    confidence: float
    evidence: list[str]


class RejectionRead(BaseModel):
    account_id: str
    strategy: str
    confidence: float
    reason: str
    ticket_domain: str
    account_domain: str | None


class TicketDiagnosisRead(BaseModel):
    """How a run would treat one ticket."""

    ticket_id: str
    error: str | None = None
    external_key: str | None = None
    ticket_domain: str | None = None
    identifiers: list[ExtractedIdentifierRead] = []
    index_hits: list[IndexHitRead] = []
    ambiguous_identifiers: list[str] = []
    theme_links: list[ThemeLinkRead] = []
    strategy: str | None = None
    candidates: list[LinkCandidateRead] = []
    accepted: list[LinkCandidateRead] = []
    rejected: list[RejectionRead] = []
    stored_links: list[LinkRead] = []

    @classmethod
    def from_diagnosis(cls, diagnosis) -> "TicketDiagnosisRead":
        stored = [LinkRead.model_validate(link) for link in diagnosis.stored_links]
        outcome = diagnosis.outcome
        if outcome is None:
            return cls(ticket_id=diagnosis.ticket_id, error=diagnosis.error, stored_links=stored)
        return cls(
            ticket_id=diagnosis.ticket_id,
            external_key=outcome.ticket.external_key,
            ticket_domain=outcome.ticket_domain.value,
            identifiers=[ExtractedIdentifierRead.model_validate(i) for i in outcome.identifiers],
            index_hits=[
                IndexHitRead(identifier=identifier, case_id=case_id, account_id=account_id)
                for identifier, case_id, account_id in outcome.index_hits
            ],
            ambiguous_identifiers=list(diagnosis.ambiguous_identifiers),
            theme_links=[ThemeLinkRead.model_validate(t) for t in outcome.theme_links],
            strategy=outcome.strategy.value if outcome.strategy else None,
            candidates=[LinkCandidateRead.model_validate(c) for c in outcome.candidates],
            accepted=[LinkCandidateRead.model_validate(c) for c in outcome.accepted],
            rejected=[
                RejectionRead(
                    account_id=r.candidate.account_id,
                    strategy=r.candidate.strategy.value,
                    confidence=r.candidate.confidence,
                    reason=r.reason,
                    ticket_domain=r.ticket_domain.value,
                    account_domain=r.account_domain.value if r.account_domain else None,
                )
                for r in outcome.rejected
            ],
            stored_links=stored,
        )


class JobQueuedResponse(BaseModel):
    job_id: UUID
    status: str
    full_recompute: bool


class JobListItem(BaseModel):
    """Queued or finished background job."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    job_type: str
    status: str
    run_at: datetime
    attempts: int
    last_error: str | None = None
    created_at: datetime
    completed_at: datetime | None = None
