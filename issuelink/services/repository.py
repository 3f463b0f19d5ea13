"""Persistence boundary for reconciliation runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Collection, Protocol, Sequence
from uuid import UUID

from issuelink.services.match_strategies import LinkCandidate
from issuelink.services.theme_linker import ThemeLinkCandidate


class RepositoryError(RuntimeError):
    """A repository read or write failed."""


@dataclass(frozen=True)
class StoredLink:
    account_id: str
    ticket_id: str
    strategy: str
    confidence: float
    evidence: dict = field(default_factory=dict)


@dataclass(frozen=True)
class StoredThemeLink:
    theme_key: str
    ticket_id: str
    match_type: str
    confidence: float


class ReconciliationRepository(Protocol):
    """
    Source records in, derived links out.

    Record listings may return ORM rows, dicts or any attribute bag; the engine
    validates them itself. Writes either commit fully or raise RepositoryError.
    """

    def list_accounts(self, org_id: UUID) -> Sequence[Any]: ...

    def list_cases(self, org_id: UUID, *, account_id: str | None = None) -> Sequence[Any]: ...

    def list_tickets(
        self, org_id: UUID, *, ticket_ids: Collection[str] | None = None
    ) -> Sequence[Any]: ...

    def list_themes(self, org_id: UUID) -> Sequence[Any]: ...

    def list_links(
        self,
        org_id: UUID,
        *,
        account_id: str | None = None,
        ticket_id: str | None = None,
    ) -> list[StoredLink]: ...

    def list_theme_links(
        self,
        org_id: UUID,
        *,
        theme_key: str | None = None,
        ticket_id: str | None = None,
    ) -> list[StoredThemeLink]: ...

    def upsert_links(self, org_id: UUID, links: Sequence[LinkCandidate]) -> int: ...

    def upsert_theme_links(self, org_id: UUID, links: Sequence[ThemeLinkCandidate]) -> int: ...

    def delete_links_for_tickets(
        self,
        org_id: UUID,
        ticket_ids: Collection[str],
        *,
        keep: Collection[tuple[str, str]] = (),
    ) -> int: ...

    def delete_theme_links_for_tickets(
        self,
        org_id: UUID,
        ticket_ids: Collection[str],
        *,
        keep: Collection[tuple[str, str]] = (),
    ) -> int: ...

    def wipe_links(self, org_id: UUID) -> tuple[int, int]: ...
