"""In-memory index from case identifiers to owning accounts."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Iterable

from issuelink.schemas.records import CaseRecord
from issuelink.utils.normalization import identifier_variants

logger = logging.getLogger(__name__)


class CaseIndex:
    """
    Identifier -> case lookup built once per run.

    Each case is reachable by its record id, its external case number and the
    zero-stripped form of that number. An identifier that resolves to cases of
    two different accounts is ambiguous and left out.
    """

    def __init__(self, cases: Iterable[CaseRecord]):
        self._cases: dict[str, CaseRecord] = {}
        self._ambiguous: set[str] = set()
        self._accounts_by_theme: dict[str, set[str]] = defaultdict(set)

        for case in cases:
            if case.account_id and case.theme_key:
                self._accounts_by_theme[case.theme_key].add(case.account_id)
            for identifier in self._case_identifiers(case):
                self._add(identifier, case)

        if self._ambiguous:
            logger.info(
                "Dropped %s ambiguous case identifiers from index", len(self._ambiguous)
            )

    @staticmethod
    def _case_identifiers(case: CaseRecord) -> list[str]:
        identifiers = identifier_variants(case.external_case_number)
        if case.id not in identifiers:
            identifiers.append(case.id)
        return identifiers

    def _add(self, identifier: str, case: CaseRecord) -> None:
        if identifier in self._ambiguous:
            return
        existing = self._cases.get(identifier)
        if existing is None:
            self._cases[identifier] = case
            return
        if existing.account_id != case.account_id:
            logger.debug(
                "Case identifier %s maps to accounts %s and %s",
                identifier,
                existing.account_id,
                case.account_id,
            )
            del self._cases[identifier]
            self._ambiguous.add(identifier)

    def __len__(self) -> int:
        return len(self._cases)

    @property
    def ambiguous(self) -> frozenset[str]:
        return frozenset(self._ambiguous)

    def lookup_case(self, identifier: str) -> CaseRecord | None:
        """Case for an extracted identifier, trying its zero-stripped form too."""
        for variant in identifier_variants(identifier):
            case = self._cases.get(variant)
            if case is not None:
                return case
        return None

    def lookup(self, identifier: str) -> str | None:
        case = self.lookup_case(identifier)
        return case.account_id if case else None

    def accounts_for_theme(self, theme_key: str) -> frozenset[str]:
        return frozenset(self._accounts_by_theme.get(theme_key, ()))

    @property
    def theme_keys(self) -> frozenset[str]:
        return frozenset(self._accounts_by_theme)
