"""SQLAlchemy implementation of the reconciliation repository."""

from __future__ import annotations

import logging
from typing import Collection, Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from issuelink.db.models import (
    Account,
    AccountTicketLink,
    SupportCase,
    Theme,
    ThemeTicketLink,
    Ticket,
)
from issuelink.db.types import utcnow
from issuelink.services.match_strategies import LinkCandidate
from issuelink.services.repository import RepositoryError, StoredLink, StoredThemeLink
from issuelink.services.theme_linker import ThemeLinkCandidate

logger = logging.getLogger(__name__)

# Keep IN (...) lists well under driver parameter limits.
IN_CLAUSE_CHUNK = 500


def _chunked(values: Collection[str]) -> list[list[str]]:
    ordered = sorted(values)
    return [ordered[i : i + IN_CLAUSE_CHUNK] for i in range(0, len(ordered), IN_CLAUSE_CHUNK)]


class SqlAlchemyRepository:
    """Reads synced records and writes links with one Session."""

    def __init__(self, db: Session):
        self.db = db

    def _fail(self, action: str, exc: SQLAlchemyError) -> RepositoryError:
        self.db.rollback()
        logger.debug("Repository %s failed", action, exc_info=exc)
        return RepositoryError(f"{action} failed: {exc.__class__.__name__}")

    # ---------------------------------------------------------------------
    # Records
    # ---------------------------------------------------------------------

    def list_accounts(self, org_id: UUID) -> list[Account]:
        try:
            return (
                self.db.query(Account)
                .filter(Account.organization_id == org_id)
                .order_by(Account.id)
                .all()
            )
        except SQLAlchemyError as exc:
            raise self._fail("list_accounts", exc) from exc

    def list_cases(self, org_id: UUID, *, account_id: str | None = None) -> list[SupportCase]:
        try:
            query = self.db.query(SupportCase).filter(SupportCase.organization_id == org_id)
            if account_id:
                query = query.filter(SupportCase.account_id == account_id)
            return query.order_by(SupportCase.id).all()
        except SQLAlchemyError as exc:
            raise self._fail("list_cases", exc) from exc

    def list_tickets(
        self, org_id: UUID, *, ticket_ids: Collection[str] | None = None
    ) -> list[Ticket]:
        try:
            base = self.db.query(Ticket).filter(Ticket.organization_id == org_id)
            if ticket_ids is None:
                return base.order_by(Ticket.id).all()
            rows: list[Ticket] = []
            for chunk in _chunked(ticket_ids):
                rows.extend(base.filter(Ticket.id.in_(chunk)).all())
            return sorted(rows, key=lambda row: row.id)
        except SQLAlchemyError as exc:
            raise self._fail("list_tickets", exc) from exc

    def list_themes(self, org_id: UUID) -> list[Theme]:
        try:
            return (
                self.db.query(Theme)
                .filter(Theme.organization_id == org_id)
                .order_by(Theme.key)
                .all()
            )
        except SQLAlchemyError as exc:
            raise self._fail("list_themes", exc) from exc

    # ---------------------------------------------------------------------
    # Links
    # ---------------------------------------------------------------------

    def list_links(
        self,
        org_id: UUID,
        *,
        account_id: str | None = None,
        ticket_id: str | None = None,
    ) -> list[StoredLink]:
        try:
            query = self.db.query(AccountTicketLink).filter(
                AccountTicketLink.organization_id == org_id
            )
            if account_id:
                query = query.filter(AccountTicketLink.account_id == account_id)
            if ticket_id:
                query = query.filter(AccountTicketLink.ticket_id == ticket_id)
            rows = query.order_by(AccountTicketLink.ticket_id, AccountTicketLink.account_id).all()
        except SQLAlchemyError as exc:
            raise self._fail("list_links", exc) from exc
        return [
            StoredLink(
                account_id=row.account_id,
                ticket_id=row.ticket_id,
                strategy=row.strategy,
                confidence=row.confidence,
                evidence=dict(row.evidence or {}),
            )
            for row in rows
        ]

    def list_theme_links(
        self,
        org_id: UUID,
        *,
        theme_key: str | None = None,
        ticket_id: str | None = None,
    ) -> list[StoredThemeLink]:
        try:
            query = self.db.query(ThemeTicketLink).filter(
                ThemeTicketLink.organization_id == org_id
            )
            if theme_key:
                query = query.filter(ThemeTicketLink.theme_key == theme_key)
            if ticket_id:
                query = query.filter(ThemeTicketLink.ticket_id == ticket_id)
            rows = query.order_by(ThemeTicketLink.ticket_id, ThemeTicketLink.theme_key).all()
        except SQLAlchemyError as exc:
            raise self._fail("list_theme_links", exc) from exc
        return [
            StoredThemeLink(
                theme_key=row.theme_key,
                ticket_id=row.ticket_id,
                match_type=row.match_type,
                confidence=row.confidence,
            )
            for row in rows
        ]

    def upsert_links(self, org_id: UUID, links: Sequence[LinkCandidate]) -> int:
        """Insert links, or replace the stored provenance of pairs that already exist."""
        try:
            for link in links:
                row = self.db.get(AccountTicketLink, (org_id, link.account_id, link.ticket_id))
                if row is None:
                    self.db.add(
                        AccountTicketLink(
                            organization_id=org_id,
                            account_id=link.account_id,
                            ticket_id=link.ticket_id,
                            strategy=link.strategy.value,
                            confidence=link.confidence,
                            evidence=link.evidence_payload(),
                        )
                    )
                else:
                    row.strategy = link.strategy.value
                    row.confidence = link.confidence
                    row.evidence = link.evidence_payload()
                    row.updated_at = utcnow()
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail("upsert_links", exc) from exc
        return len(links)

    def upsert_theme_links(self, org_id: UUID, links: Sequence[ThemeLinkCandidate]) -> int:
        try:
            for link in links:
                row = self.db.get(ThemeTicketLink, (org_id, link.theme_key, link.ticket_id))
                if row is None:
                    self.db.add(
                        ThemeTicketLink(
                            organization_id=org_id,
                            theme_key=link.theme_key,
                            ticket_id=link.ticket_id,
                            match_type=link.match_type.value,
                            confidence=link.confidence,
                        )
                    )
                else:
                    row.match_type = link.match_type.value
                    row.confidence = link.confidence
                    row.updated_at = utcnow()
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail("upsert_theme_links", exc) from exc
        return len(links)

    def delete_links_for_tickets(
        self,
        org_id: UUID,
        ticket_ids: Collection[str],
        *,
        keep: Collection[tuple[str, str]] = (),
    ) -> int:
        """Delete links of these tickets except the (account_id, ticket_id) pairs in keep."""
        keep_pairs = set(keep)
        deleted = 0
        try:
            for chunk in _chunked(ticket_ids):
                rows = (
                    self.db.query(AccountTicketLink)
                    .filter(
                        AccountTicketLink.organization_id == org_id,
                        AccountTicketLink.ticket_id.in_(chunk),
                    )
                    .all()
                )
                for row in rows:
                    if (row.account_id, row.ticket_id) not in keep_pairs:
                        self.db.delete(row)
                        deleted += 1
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail("delete_links_for_tickets", exc) from exc
        return deleted

    def delete_theme_links_for_tickets(
        self,
        org_id: UUID,
        ticket_ids: Collection[str],
        *,
        keep: Collection[tuple[str, str]] = (),
    ) -> int:
        """Delete theme links of these tickets except the (theme_key, ticket_id) pairs in keep."""
        keep_pairs = set(keep)
        deleted = 0
        try:
            for chunk in _chunked(ticket_ids):
                rows = (
                    self.db.query(ThemeTicketLink)
                    .filter(
                        ThemeTicketLink.organization_id == org_id,
                        ThemeTicketLink.ticket_id.in_(chunk),
                    )
                    .all()
                )
                for row in rows:
                    if (row.theme_key, row.ticket_id) not in keep_pairs:
                        self.db.delete(row)
                        deleted += 1
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail("delete_theme_links_for_tickets", exc) from exc
        return deleted

    def wipe_links(self, org_id: UUID) -> tuple[int, int]:
        """Delete every link and theme link of the organization."""
        try:
            links = (
                self.db.query(AccountTicketLink)
                .filter(AccountTicketLink.organization_id == org_id)
                .delete(synchronize_session="fetch")
            )
            theme_links = (
                self.db.query(ThemeTicketLink)
                .filter(ThemeTicketLink.organization_id == org_id)
                .delete(synchronize_session="fetch")
            )
            self.db.commit()
        except SQLAlchemyError as exc:
            raise self._fail("wipe_links", exc) from exc
        return links, theme_links
