"""Deduplicate link candidates and write them in retried batches."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Hashable, Iterable, Sequence, TypeVar
from uuid import UUID

from issuelink.services.match_strategies import LinkCandidate
from issuelink.services.repository import ReconciliationRepository, RepositoryError
from issuelink.services.theme_linker import ThemeLinkCandidate

logger = logging.getLogger(__name__)

T = TypeVar("T")

LINKS = "links"
THEME_LINKS = "theme_links"


@dataclass(frozen=True)
class FailedBatch:
    kind: str
    index: int
    size: int
    error: str
    keys: tuple[tuple[str, str], ...] = ()


@dataclass
class WriteOutcome:
    written: int = 0
    failed_batches: list[FailedBatch] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed_batches


def _reduce(
    candidates: Iterable[T],
    key: Callable[[T], Hashable],
    better: Callable[[T, T], bool],
    label: str,
) -> tuple[list[T], list[T]]:
    kept: dict[Hashable, T] = {}
    discarded: list[T] = []
    for candidate in candidates:
        pair = key(candidate)
        current = kept.get(pair)
        if current is None:
            kept[pair] = candidate
            continue
        if better(candidate, current):
            kept[pair] = candidate
            loser = current
        else:
            loser = candidate
        discarded.append(loser)
        logger.debug("Discarded duplicate %s candidate %s", label, loser)
    return list(kept.values()), discarded


def deduplicate_links(
    candidates: Iterable[LinkCandidate],
) -> tuple[list[LinkCandidate], list[LinkCandidate]]:
    """
    Collapse candidates to one per (account_id, ticket_id).

    Higher confidence wins; on a tie the strategy earlier in the chain wins.
    Returns (kept, discarded), kept in first-seen order.
    """
    return _reduce(
        candidates,
        key=lambda c: c.pair,
        better=lambda new, old: (new.confidence, -new.strategy.precedence)
        > (old.confidence, -old.strategy.precedence),
        label="link",
    )


def deduplicate_theme_links(
    candidates: Iterable[ThemeLinkCandidate],
) -> tuple[list[ThemeLinkCandidate], list[ThemeLinkCandidate]]:
    return _reduce(
        candidates,
        key=lambda c: (c.theme_key, c.ticket_id),
        better=lambda new, old: new.confidence > old.confidence,
        label="theme link",
    )


def _chunks(rows: Sequence[T], size: int) -> Iterable[Sequence[T]]:
    for start in range(0, len(rows), size):
        yield rows[start : start + size]


class LinkWriter:
    """Batched, retried upserts through a repository."""

    def __init__(
        self,
        repository: ReconciliationRepository,
        org_id: UUID,
        *,
        batch_size: int = 100,
        max_attempts: int = 3,
        base_delay: float = 0.5,
        max_delay: float = 4.0,
        sleep: Callable[[float], None] = time.sleep,
        log_extra: dict | None = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.repository = repository
        self.org_id = org_id
        self.batch_size = batch_size
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep
        self._log_extra = log_extra or {}

    def write_links(self, links: Sequence[LinkCandidate]) -> WriteOutcome:
        return self._write(LINKS, links, self.repository.upsert_links, lambda c: c.pair)

    def write_theme_links(self, links: Sequence[ThemeLinkCandidate]) -> WriteOutcome:
        return self._write(
            THEME_LINKS,
            links,
            self.repository.upsert_theme_links,
            lambda c: (c.theme_key, c.ticket_id),
        )

    def _write(
        self,
        kind: str,
        rows: Sequence[T],
        upsert: Callable[[UUID, Sequence[T]], int],
        key: Callable[[T], tuple[str, str]],
    ) -> WriteOutcome:
        outcome = WriteOutcome()
        for index, batch in enumerate(_chunks(rows, self.batch_size)):
            try:
                self._with_retries(kind, index, lambda: upsert(self.org_id, batch))
            except RepositoryError as exc:
                logger.error(
                    "Failed to write %s batch %s (%s rows) after %s attempts: %s",
                    kind,
                    index,
                    len(batch),
                    self.max_attempts,
                    exc,
                    extra=self._log_extra,
                )
                outcome.failed_batches.append(
                    FailedBatch(
                        kind=kind,
                        index=index,
                        size=len(batch),
                        error=str(exc),
                        keys=tuple(key(row) for row in batch),
                    )
                )
                continue
            outcome.written += len(batch)
        return outcome

    def _with_retries(self, kind: str, index: int, write: Callable[[], int]) -> None:
        for attempt in range(self.max_attempts):
            try:
                write()
                return
            except RepositoryError:
                if attempt >= self.max_attempts - 1:
                    raise
                delay = min(self.max_delay, self.base_delay * (2**attempt))
                if delay:
                    delay = delay + random.uniform(0, delay / 2)
                logger.warning(
                    "Write of %s batch %s failed, retrying",
                    kind,
                    index,
                    exc_info=True,
                    extra=self._log_extra,
                )
                if delay:
                    self._sleep(delay)
