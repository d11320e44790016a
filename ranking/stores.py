"""Read-only data sources the engine consumes, plus in-memory implementations.

The protocols describe what a host must provide.  The ``InMemory*`` classes
are thread-safe reference implementations used by :mod:`main` and the
test-suite; :class:`InMemoryVoteStore` also folds individual
:class:`~ranking.models.VoteRecord` objects into aggregates.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from collections import deque
from collections.abc import Iterable
from typing import Protocol

from ranking.errors import InvalidInputError
from ranking.models import (
    ContentItem,
    CreatorReputation,
    EngagementStats,
    RecentVote,
    VoteAggregate,
    VoteKind,
    VoteRecord,
)

logger = logging.getLogger(__name__)

DEFAULT_RECENT_VOTE_WINDOW = 256


class ContentStore(Protocol):
    def get(self, content_id: str) -> ContentItem | None: ...


class VoteStore(Protocol):
    def aggregate(self, content_id: str) -> VoteAggregate: ...


class EngagementStore(Protocol):
    def stats(self, content_id: str) -> EngagementStats: ...


class ReputationStore(Protocol):
    def lookup(self, creator_id: str) -> CreatorReputation | None: ...


@dataclasses.dataclass
class DataSources:
    """The set of stores an engine may consult on a cache miss.

    Any store can be ``None``; the engine then relies on whatever the item
    view carries and falls back to neutral defaults.
    """

    content: ContentStore | None = None
    votes: VoteStore | None = None
    engagement: EngagementStore | None = None
    reputation: ReputationStore | None = None


class InMemoryContentStore:
    """Thread-safe dictionary of content items keyed by id."""

    def __init__(self, items: Iterable[ContentItem] = ()) -> None:
        self._lock = threading.RLock()
        self._items: dict[str, ContentItem] = {i.content_id: i for i in items}

    def get(self, content_id: str) -> ContentItem | None:
        with self._lock:
            return self._items.get(content_id)

    def put(self, item: ContentItem) -> None:
        with self._lock:
            self._items[item.content_id] = item

    def all_items(self) -> list[ContentItem]:
        with self._lock:
            return list(self._items.values())


class InMemoryEngagementStore:
    """Thread-safe engagement counters; unknown ids read as all-zero stats."""

    def __init__(self, stats: dict[str, EngagementStats] | None = None) -> None:
        self._lock = threading.RLock()
        self._stats: dict[str, EngagementStats] = dict(stats or {})

    def stats(self, content_id: str) -> EngagementStats:
        with self._lock:
            current = self._stats.get(content_id)
            return dataclasses.replace(current) if current else EngagementStats()

    def put(self, content_id: str, stats: EngagementStats) -> None:
        with self._lock:
            self._stats[content_id] = stats


class InMemoryReputationStore:
    """Thread-safe creator reputation table."""

    def __init__(self, creators: dict[str, CreatorReputation] | None = None) -> None:
        self._lock = threading.RLock()
        self._creators: dict[str, CreatorReputation] = dict(creators or {})

    def lookup(self, creator_id: str) -> CreatorReputation | None:
        with self._lock:
            return self._creators.get(creator_id)

    def put(self, creator_id: str, reputation: CreatorReputation) -> None:
        with self._lock:
            self._creators[creator_id] = reputation


class InMemoryVoteStore:
    """Folds validated votes into per-item aggregates.

    Individual :class:`VoteRecord` objects are not retained; only the
    counters and a bounded window of the most recent ``(voter, time)``
    pairs survive ingestion.

    Args:
        window: Length of the recent-vote window kept per item.
    """

    def __init__(self, window: int = DEFAULT_RECENT_VOTE_WINDOW) -> None:
        self._lock = threading.RLock()
        self._window = window
        self._aggregates: dict[str, VoteAggregate] = {}
        self._recent: dict[str, deque[RecentVote]] = {}

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def record(self, vote: VoteRecord) -> None:
        """Fold a single vote into its item's aggregate.

        Raises:
            InvalidInputError: If the vote burns a negative number of tokens
                or is a super vote that burned none.
        """
        if not vote.content_id or not vote.voter_id:
            raise InvalidInputError("vote is missing its content or voter id")
        if vote.tokens_burned < 0:
            raise InvalidInputError(f"vote burns a negative token amount: {vote.tokens_burned}")
        if vote.kind == VoteKind.SUPER and vote.tokens_burned < 1:
            raise InvalidInputError("super votes must burn at least one token")

        with self._lock:
            agg = self._aggregates.setdefault(vote.content_id, VoteAggregate())
            recent = self._recent.setdefault(vote.content_id, deque(maxlen=self._window))
            if vote.kind == VoteKind.UP:
                agg.upvotes += 1
            elif vote.kind == VoteKind.DOWN:
                agg.downvotes += 1
            else:
                agg.super_votes += 1
            agg.total_tokens_burned += vote.tokens_burned
            recent.append(RecentVote(voter_id=vote.voter_id, timestamp=vote.timestamp))
        logger.debug(
            "Recorded %s vote on %r (%d tokens).", vote.kind.value, vote.content_id, vote.tokens_burned
        )

    def record_many(self, votes: Iterable[VoteRecord]) -> int:
        """Fold a sequence of votes; returns how many were recorded."""
        count = 0
        for vote in votes:
            self.record(vote)
            count += 1
        return count

    def put(self, content_id: str, aggregate: VoteAggregate) -> None:
        """Replace an item's aggregate wholesale (e.g. when loading a snapshot)."""
        with self._lock:
            self._aggregates[content_id] = dataclasses.replace(aggregate, recent_votes=[])
            self._recent[content_id] = deque(aggregate.recent_votes, maxlen=self._window)

    # ------------------------------------------------------------------
    # VoteStore protocol
    # ------------------------------------------------------------------

    def aggregate(self, content_id: str) -> VoteAggregate:
        """Return a snapshot copy; unknown ids read as an empty aggregate."""
        with self._lock:
            agg = self._aggregates.get(content_id)
            if agg is None:
                return VoteAggregate()
            return dataclasses.replace(agg, recent_votes=list(self._recent[content_id]))
