"""Ordered matching strategies proposing account <-> ticket links."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping, Protocol, Sequence

from issuelink.db.enums import LinkStrategy
from issuelink.schemas.records import AccountRecord, TicketRecord
from issuelink.services.case_index import CaseIndex
from issuelink.services.identifier_extractor import ExtractedIdentifier
from issuelink.services.theme_linker import ThemeLinkCandidate
from issuelink.utils.normalization import (
    SIGNIFICANT_TOKEN_MIN_LENGTH,
    normalize_name,
    significant_tokens,
    split_list_value,
)

logger = logging.getLogger(__name__)

CUSTOM_FIELD_HIT_CONFIDENCE = 1.0
TEXT_HIT_CONFIDENCE = 0.95
CLIENT_EXACT_CONFIDENCE = 0.95
CLIENT_CONTAINMENT_CONFIDENCE = 0.80
CLIENT_TOKEN_CONFIDENCE = 0.80
THEME_BASE_CONFIDENCE = 0.50
THEME_WEIGHT = 0.20

EVIDENCE_KEYS = {
    LinkStrategy.DIRECT_CASE_ID: "identifiers",
    LinkStrategy.CLIENT_FIELD: "client_names",
    LinkStrategy.THEME_ASSOCIATION: "theme_keys",
}


@dataclass(frozen=True)
class LinkCandidate:
    account_id: str
    ticket_id: str
    strategy: LinkStrategy
    confidence: float
    evidence: tuple[str, ...] = field(default=())

    @property
    def pair(self) -> tuple[str, str]:
        return (self.account_id, self.ticket_id)

    def evidence_payload(self) -> dict[str, list[str]]:
        return {EVIDENCE_KEYS[self.strategy]: list(self.evidence)}


@dataclass(frozen=True)
class AccountDirectory:
    """Accounts of a run plus their normalized names."""

    accounts: Mapping[str, AccountRecord]
    names: Mapping[str, str]
    name_tokens: Mapping[str, frozenset[str]]

    @classmethod
    def build(cls, accounts: Mapping[str, AccountRecord]) -> "AccountDirectory":
        names = {account_id: normalize_name(a.name) for account_id, a in accounts.items()}
        return cls(
            accounts=accounts,
            names=names,
            name_tokens={
                account_id: frozenset(significant_tokens(name))
                for account_id, name in names.items()
            },
        )

    def __contains__(self, account_id: object) -> bool:
        return account_id in self.accounts


@dataclass(frozen=True)
class MatchContext:
    """Everything a strategy may look at for one ticket."""

    case_index: CaseIndex
    directory: AccountDirectory
    identifiers: Sequence[ExtractedIdentifier]
    theme_links: Sequence[ThemeLinkCandidate]
    client_name_field: str


class MatchStrategy(Protocol):
    name: LinkStrategy

    def propose(self, ticket: TicketRecord, context: MatchContext) -> list[LinkCandidate]:
        ...


def _best_per_account(
    ticket: TicketRecord,
    strategy: LinkStrategy,
    scored: list[tuple[str, float, str]],
) -> list[LinkCandidate]:
    best: dict[str, float] = {}
    evidence: dict[str, list[str]] = {}
    for account_id, confidence, item in scored:
        best[account_id] = max(confidence, best.get(account_id, 0.0))
        items = evidence.setdefault(account_id, [])
        if item not in items:
            items.append(item)
    return [
        LinkCandidate(
            account_id=account_id,
            ticket_id=ticket.id,
            strategy=strategy,
            confidence=round(best[account_id], 4),
            evidence=tuple(evidence[account_id]),
        )
        for account_id in sorted(best)
    ]


class DirectCaseIdStrategy:
    """Identifiers found on the ticket that resolve through the case index."""

    name = LinkStrategy.DIRECT_CASE_ID

    def propose(self, ticket: TicketRecord, context: MatchContext) -> list[LinkCandidate]:
        scored: list[tuple[str, float, str]] = []
        for extracted in context.identifiers:
            account_id = context.case_index.lookup(extracted.identifier)
            if not account_id:
                continue
            if account_id not in context.directory:
                logger.debug(
                    "Case identifier %s points at unknown account %s",
                    extracted.identifier,
                    account_id,
                )
                continue
            confidence = (
                CUSTOM_FIELD_HIT_CONFIDENCE
                if extracted.from_custom_field
                else TEXT_HIT_CONFIDENCE
            )
            scored.append((account_id, confidence, extracted.identifier))
        return _best_per_account(ticket, self.name, scored)


def score_client_name(
    client_name: str, account_name: str, account_tokens: frozenset[str]
) -> float | None:
    """
    Score a normalized client name against a normalized account name.

    Exact match beats containment either way round; failing both, every
    significant token of the client name must appear in the account name.
    """
    if not client_name or not account_name:
        return None
    if client_name == account_name:
        return CLIENT_EXACT_CONFIDENCE
    if client_name in account_name and len(client_name) >= SIGNIFICANT_TOKEN_MIN_LENGTH:
        return CLIENT_CONTAINMENT_CONFIDENCE
    if account_name in client_name and len(account_name) >= SIGNIFICANT_TOKEN_MIN_LENGTH:
        return CLIENT_CONTAINMENT_CONFIDENCE
    tokens = significant_tokens(client_name)
    if tokens and all(token in account_tokens for token in tokens):
        return CLIENT_TOKEN_CONFIDENCE
    return None


class ClientFieldStrategy:
    """Client names from the configured custom field matched against account names."""

    name = LinkStrategy.CLIENT_FIELD

    def propose(self, ticket: TicketRecord, context: MatchContext) -> list[LinkCandidate]:
        raw_names = split_list_value(ticket.custom_fields.get(context.client_name_field))
        if not raw_names:
            return []
        scored: list[tuple[str, float, str]] = []
        for raw_name in raw_names:
            client_name = normalize_name(raw_name)
            for account_id, account_name in context.directory.names.items():
                confidence = score_client_name(
                    client_name, account_name, context.directory.name_tokens[account_id]
                )
                if confidence is not None:
                    scored.append((account_id, confidence, raw_name))
        return _best_per_account(ticket, self.name, scored)


class ThemeAssociationStrategy:
    """Accounts whose cases carry a theme the ticket is linked to."""

    name = LinkStrategy.THEME_ASSOCIATION

    def propose(self, ticket: TicketRecord, context: MatchContext) -> list[LinkCandidate]:
        scored: list[tuple[str, float, str]] = []
        for theme_link in context.theme_links:
            confidence = THEME_BASE_CONFIDENCE + THEME_WEIGHT * theme_link.confidence
            for account_id in sorted(context.case_index.accounts_for_theme(theme_link.theme_key)):
                if account_id in context.directory:
                    scored.append((account_id, confidence, theme_link.theme_key))
        return _best_per_account(ticket, self.name, scored)


DEFAULT_STRATEGIES: tuple[MatchStrategy, ...] = (
    DirectCaseIdStrategy(),
    ClientFieldStrategy(),
    ThemeAssociationStrategy(),
)


def run_chain(
    strategies: Sequence[MatchStrategy],
    ticket: TicketRecord,
    context: MatchContext,
) -> tuple[LinkStrategy | None, list[LinkCandidate]]:
    """Run strategies in order and stop at the first that proposes anything."""
    for strategy in strategies:
        candidates = strategy.propose(ticket, context)
        if candidates:
            return strategy.name, candidates
    return None, []
