"""Domain-conflict filtering of link candidates."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping

from issuelink.db.enums import Domain, LinkStrategy
from issuelink.schemas.records import AccountRecord
from issuelink.services.match_strategies import LinkCandidate
from issuelink.utils.normalization import contains_any, project_prefix

REASON_UNKNOWN_ACCOUNT = "unknown_account"
REASON_DOMAIN_CONFLICT = "domain_conflict"
REASON_PRODUCT_LINE = "product_line_mismatch"


@dataclass(frozen=True)
class DomainRules:
    project_domains: Mapping[str, Domain]
    shared_prefixes: frozenset[str]
    account_keywords: Mapping[Domain, tuple[str, ...]]
    product_lines: Mapping[str, frozenset[str]]

    @classmethod
    def from_mappings(
        cls,
        *,
        project_prefixes: Mapping[str, Iterable[str]],
        shared_prefixes: Iterable[str],
        account_keywords: Mapping[str, Iterable[str]],
        product_lines: Mapping[str, Iterable[str]],
    ) -> "DomainRules":
        """Build rules from settings-style mappings keyed by domain name."""
        project_domains: dict[str, Domain] = {}
        for domain_name, prefixes in project_prefixes.items():
            domain = Domain(domain_name)
            for prefix in prefixes:
                project_domains[prefix.upper()] = domain
        return cls(
            project_domains=project_domains,
            shared_prefixes=frozenset(prefix.upper() for prefix in shared_prefixes),
            account_keywords={
                Domain(domain_name): tuple(keyword.lower() for keyword in keywords)
                for domain_name, keywords in account_keywords.items()
            },
            product_lines={
                line.lower(): frozenset(prefix.upper() for prefix in prefixes)
                for line, prefixes in product_lines.items()
            },
        )


@dataclass(frozen=True)
class Rejection:
    candidate: LinkCandidate
    reason: str
    ticket_domain: Domain
    account_domain: Domain | None


def ticket_domain(external_key: str | None, rules: DomainRules) -> Domain:
    prefix = project_prefix(external_key)
    if prefix is None:
        return Domain.UNCLASSIFIED
    if prefix in rules.shared_prefixes:
        return Domain.SHARED
    return rules.project_domains.get(prefix, Domain.UNCLASSIFIED)


def _account_text(account: AccountRecord) -> str:
    return " ".join([*account.products, account.vertical or ""])


def account_domain(account: AccountRecord, rules: DomainRules) -> Domain:
    """Domain whose keywords appear in products/vertical; ambiguous or none is unclassified."""
    text = _account_text(account)
    matched = [
        domain
        for domain, keywords in rules.account_keywords.items()
        if contains_any(text, keywords)
    ]
    if len(matched) != 1:
        return Domain.UNCLASSIFIED
    return matched[0]


def product_line(external_key: str | None, rules: DomainRules) -> str | None:
    prefix = project_prefix(external_key)
    for line, prefixes in rules.product_lines.items():
        if prefix in prefixes:
            return line
    return None


class DomainFilter:
    """Single gate that decides which candidates may be persisted."""

    def __init__(self, rules: DomainRules, accounts: Mapping[str, AccountRecord]):
        self._rules = rules
        self._accounts = accounts
        self._account_domains: dict[str, Domain] = {}

    def account_domain(self, account_id: str) -> Domain | None:
        account = self._accounts.get(account_id)
        if account is None:
            return None
        domain = self._account_domains.get(account_id)
        if domain is None:
            domain = account_domain(account, self._rules)
            self._account_domains[account_id] = domain
        return domain

    def check(self, candidate: LinkCandidate, external_key: str) -> Rejection | None:
        t_domain = ticket_domain(external_key, self._rules)
        a_domain = self.account_domain(candidate.account_id)
        if a_domain is None:
            return Rejection(candidate, REASON_UNKNOWN_ACCOUNT, t_domain, None)
        if t_domain.is_specific and a_domain.is_specific and t_domain != a_domain:
            return Rejection(candidate, REASON_DOMAIN_CONFLICT, t_domain, a_domain)
        if candidate.strategy == LinkStrategy.THEME_ASSOCIATION:
            line = product_line(external_key, self._rules)
            products = " ".join(self._accounts[candidate.account_id].products)
            if line and not contains_any(products, [line]):
                return Rejection(candidate, REASON_PRODUCT_LINE, t_domain, a_domain)
        return None

    def apply(
        self, candidates: Iterable[LinkCandidate], external_key: str
    ) -> tuple[list[LinkCandidate], list[Rejection]]:
        accepted: list[LinkCandidate] = []
        rejected: list[Rejection] = []
        for candidate in candidates:
            rejection = self.check(candidate, external_key)
            if rejection is None:
                accepted.append(candidate)
            else:
                rejected.append(rejection)
        return accepted, rejected
