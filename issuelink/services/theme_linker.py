"""Theme <-> ticket link derivation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from issuelink.db.enums import ThemeMatchType
from issuelink.schemas.records import CaseRecord, TicketRecord
from issuelink.utils.normalization import normalize_theme_key

DIRECT_CASE_CONFIDENCE = 1.0
LABEL_CONFIDENCE = 1.0
MULTI_KEYWORD_CONFIDENCE = 0.8
SINGLE_KEYWORD_CONFIDENCE = 0.6
KEYWORD_MIN_LENGTH = 4


@dataclass(frozen=True)
class ThemeLinkCandidate:
    theme_key: str
    ticket_id: str
    match_type: ThemeMatchType
    confidence: float
    evidence: tuple[str, ...] = field(default=())


def theme_keywords(theme_key: str) -> tuple[str, ...]:
    """Words of a snake_case theme key longer than 3 characters."""
    return tuple(
        word for word in theme_key.lower().split("_") if len(word) >= KEYWORD_MIN_LENGTH
    )


class ThemeLinker:
    """Derives ThemeLinks for a ticket from case hits, labels and keywords."""

    def __init__(self, theme_keys: Iterable[str]):
        self._keys_by_normalized: dict[str, str] = {}
        self._keywords: dict[str, tuple[str, ...]] = {}
        for key in sorted({key for key in theme_keys if key}):
            self._keys_by_normalized.setdefault(normalize_theme_key(key), key)
            self._keywords[key] = theme_keywords(key)

    @property
    def theme_keys(self) -> frozenset[str]:
        return frozenset(self._keywords)

    def link(
        self, ticket: TicketRecord, matched_cases: Iterable[CaseRecord] = ()
    ) -> list[ThemeLinkCandidate]:
        """Best ThemeLink per theme for this ticket, ordered by theme key."""
        best: dict[str, ThemeLinkCandidate] = {}

        def offer(candidate: ThemeLinkCandidate) -> None:
            current = best.get(candidate.theme_key)
            if current is None or candidate.confidence > current.confidence:
                best[candidate.theme_key] = candidate

        for case in matched_cases:
            if case.theme_key:
                offer(
                    ThemeLinkCandidate(
                        theme_key=case.theme_key,
                        ticket_id=ticket.id,
                        match_type=ThemeMatchType.DIRECT_CASE_ID,
                        confidence=DIRECT_CASE_CONFIDENCE,
                        evidence=(case.id,),
                    )
                )

        for label in ticket.labels:
            key = self._keys_by_normalized.get(normalize_theme_key(label))
            if key:
                offer(
                    ThemeLinkCandidate(
                        theme_key=key,
                        ticket_id=ticket.id,
                        match_type=ThemeMatchType.LABEL,
                        confidence=LABEL_CONFIDENCE,
                        evidence=(label,),
                    )
                )

        search_text = " ".join(
            [ticket.summary or "", ticket.description or "", " ".join(ticket.labels)]
        ).lower()
        for key, words in self._keywords.items():
            matched = tuple(word for word in words if word in search_text)
            if len(matched) >= 2:
                confidence = MULTI_KEYWORD_CONFIDENCE
            elif len(matched) == 1 and len(words) == 1:
                confidence = SINGLE_KEYWORD_CONFIDENCE
            else:
                continue
            offer(
                ThemeLinkCandidate(
                    theme_key=key,
                    ticket_id=ticket.id,
                    match_type=ThemeMatchType.KEYWORD,
                    confidence=confidence,
                    evidence=matched,
                )
            )

        return [best[key] for key in sorted(best)]
