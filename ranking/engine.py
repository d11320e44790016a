"""Ranking engine: the public entry point wiring scorer, cache, ranker and recommender."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from ranking.cache import CacheOutcome, ScoreCache
from ranking.clock import Clock, SystemClock
from ranking.config import DEFAULT_CONFIG, RankingConfig
from ranking.errors import BatchCancelledError, DependencyFailure, InvalidInputError
from ranking.metrics import MetricsSnapshot, PerformanceMetrics
from ranking.models import (
    ContentItem,
    CreatorReputation,
    EngagementStats,
    InsightCategory,
    RankedItem,
    RankingMode,
    ScoreResult,
    UserProfile,
    VoteAggregate,
)
from ranking.ranker import DEFAULT_LIMIT, RankFilters, Ranker
from ranking.recommender import DEFAULT_PERSONAL_LIMIT, DEFAULT_SIMILAR_LIMIT, Recommender
from ranking.scorer import Scorer
from ranking.stores import DataSources
from ranking.validation import validate_engagement, validate_item, validate_votes

logger = logging.getLogger(__name__)

ItemRef = ContentItem | str


class CancelSignal(Protocol):
    def is_set(self) -> bool: ...


@dataclass(frozen=True)
class _EngineState:
    """Everything derived from one config; swapped as a unit."""

    config: RankingConfig
    scorer: Scorer
    cache: ScoreCache


class RankingEngine:
    """Scores and ranks community content.

    All public methods are thread-safe.  The score cache is the only shared
    mutable state; the config snapshot is immutable and replaced wholesale
    by :meth:`update_config`.

    Store lookups happen only when a fingerprint misses the cache, and only
    for the parts of an item the caller did not embed.  A failing store
    degrades the affected signal to its neutral default and adds a warning
    insight rather than failing the call.

    Args:
        config: Initial configuration. Defaults to
            :data:`~ranking.config.DEFAULT_CONFIG`.
        sources: Stores consulted on cache misses.
        clock: Time source. Defaults to the system clock.
    """

    def __init__(
        self,
        config: RankingConfig = DEFAULT_CONFIG,
        sources: DataSources | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._clock: Clock = clock or SystemClock()
        self._sources = sources or DataSources()
        self._metrics = PerformanceMetrics()
        self._lock = threading.Lock()
        self._state = self._build_state(config)
        self._recommender = Recommender(
            config_source=lambda: self._state.config,
            ranker_factory=self._personal_ranker,
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def config(self) -> RankingConfig:
        return self._state.config

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def sources(self) -> DataSources:
        return self._sources

    def update_config(self, new_config: RankingConfig) -> None:
        """Atomically replace the config snapshot and start from an empty cache."""
        if not isinstance(new_config, RankingConfig):
            raise InvalidInputError("update_config expects a RankingConfig")
        with self._lock:
            old = self._state
            self._state = self._build_state(new_config)
            old.cache.clear()
        logger.info("Ranking config replaced; score cache cleared.")

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def score(
        self,
        item: ItemRef,
        mode: RankingMode | str = RankingMode.HOT,
        force_recalculate: bool = False,
        ab_test_group: str | None = None,
    ) -> ScoreResult:
        """Score one item, serving from the cache when possible.

        Args:
            item: A :class:`~ranking.models.ContentItem` view, or a content id
                to be resolved through the content store on a cache miss.
            mode: Ranking mode.
            force_recalculate: Skip the cache lookup; the fresh result is
                still written back.
            ab_test_group: Override the item's hashed experiment group.

        Returns:
            The :class:`~ranking.models.ScoreResult`.

        Raises:
            InvalidInputError: Malformed item, unknown id, or bad A/B group.
            UnknownModeError: If *mode* is not configured.
        """
        state = self._state
        mode = RankingMode.parse(mode)
        state.config.mode_weights(mode)
        now = self._clock.now()

        if isinstance(item, str):
            content_id = item
        else:
            validate_item(item, now, state.config.validation)
            content_id = item.content_id
        if not content_id:
            raise InvalidInputError("content id must be non-empty")

        group = ab_test_group or state.scorer.assign_ab_group(content_id)
        if group not in state.config.ab_testing.variations:
            raise InvalidInputError(f"unknown A/B test group: {group!r}")

        key = (content_id, mode, self._time_bucket(now, state.config), group)
        result, outcome = state.cache.get_or_compute(
            key,
            lambda: self._compute(state.scorer, item, mode, group),
            force=force_recalculate,
        )
        if outcome == CacheOutcome.MISS:
            self._metrics.record_miss()
        else:
            self._metrics.record_hit()
        return result

    def batch_score(
        self,
        items: Sequence[ItemRef],
        mode: RankingMode | str = RankingMode.HOT,
        batch_size: int | None = None,
        cancel_event: CancelSignal | None = None,
        force_recalculate: bool = False,
    ) -> list[ScoreResult]:
        """Score *items* group by group, yielding the thread between groups.

        Raises:
            BatchCancelledError: If *cancel_event* is set when a group is
                about to start. ``partial`` holds the results so far.
        """
        results: list[ScoreResult] = []
        for group in self._groups(items, batch_size):
            if cancel_event is not None and cancel_event.is_set():
                raise BatchCancelledError(results)
            if results:
                time.sleep(self._state.config.cache.batch_pause_seconds)
            results.extend(self.score(i, mode, force_recalculate) for i in group)
        return results

    async def batch_score_async(
        self,
        items: Sequence[ItemRef],
        mode: RankingMode | str = RankingMode.HOT,
        batch_size: int | None = None,
        cancel_event: CancelSignal | None = None,
        force_recalculate: bool = False,
    ) -> list[ScoreResult]:
        """Event-loop variant of :meth:`batch_score`; awaits between groups."""
        results: list[ScoreResult] = []
        for group in self._groups(items, batch_size):
            if cancel_event is not None and cancel_event.is_set():
                raise BatchCancelledError(results)
            if results:
                await asyncio.sleep(self._state.config.cache.batch_pause_seconds)
            results.extend(self.score(i, mode, force_recalculate) for i in group)
        return results

    def realtime_scores(
        self, content_ids: Iterable[str], mode: RankingMode | str = RankingMode.HOT
    ) -> dict[str, ScoreResult]:
        """Force fresh scores for high-traffic items.

        Only ids whose view count exceeds the configured real-time threshold
        are recalculated; unknown ids are skipped.

        Raises:
            InvalidInputError: If no content store is configured.
        """
        content_store = self._sources.content
        if content_store is None:
            raise InvalidInputError("realtime scoring requires a content store")

        threshold = self._state.config.cache.real_time_view_threshold
        scores: dict[str, ScoreResult] = {}
        for content_id in content_ids:
            item = content_store.get(content_id)
            if item is None:
                logger.debug("Skipping realtime score for unknown item %r.", content_id)
                continue
            engagement, _ = self._resolve_engagement(item)
            if engagement.views > threshold:
                scores[content_id] = self.score(item, mode, force_recalculate=True)
        return scores

    def metrics(self) -> MetricsSnapshot:
        """Return a copy of the performance counters."""
        return self._metrics.snapshot(cache_size=len(self._state.cache))

    # ------------------------------------------------------------------
    # Ranking & recommendations
    # ------------------------------------------------------------------

    def rank(
        self,
        candidates: Iterable[ContentItem],
        mode: RankingMode | str = RankingMode.HOT,
        limit: int | None = DEFAULT_LIMIT,
        time_window_hours: float | None = None,
        filters: RankFilters | None = None,
    ) -> list[RankedItem]:
        """Rank *candidates*; see :meth:`ranking.ranker.Ranker.rank`."""
        ranker = Ranker(self._state.config, self._clock, self._cached_score)
        return ranker.rank(
            candidates,
            mode=mode,
            limit=limit,
            time_window_hours=time_window_hours,
            filters=filters,
        )

    def recommend_personal(
        self,
        profile: UserProfile,
        candidates: Sequence[ContentItem],
        mode: RankingMode | str = RankingMode.HOT,
        limit: int | None = DEFAULT_PERSONAL_LIMIT,
        time_window_hours: float | None = None,
    ) -> list[RankedItem]:
        """Personalised feed for *profile*; see :class:`~ranking.recommender.Recommender`."""
        return self._recommender.personalized(
            profile, candidates, mode=mode, limit=limit, time_window_hours=time_window_hours
        )

    def recommend_similar(
        self,
        base_item: ContentItem,
        candidates: Sequence[ContentItem],
        limit: int = DEFAULT_SIMILAR_LIMIT,
    ) -> list[tuple[ContentItem, float]]:
        """Items most similar to *base_item*, with their similarity."""
        return self._recommender.similar(base_item, candidates, limit=limit)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _build_state(self, config: RankingConfig) -> _EngineState:
        cache = ScoreCache(
            time_source=lambda: self._clock.now().timestamp(),
            ttl_seconds=config.cache.ttl_seconds,
            max_entries=config.cache.max_entries,
        )
        return _EngineState(config=config, scorer=Scorer(config), cache=cache)

    @staticmethod
    def _time_bucket(now: datetime, config: RankingConfig) -> int:
        bucket_ms = config.cache.bucket_seconds * 1000
        return int(now.timestamp() * 1000) // bucket_ms

    def _groups(self, items: Sequence[ItemRef], batch_size: int | None) -> Iterable[Sequence[ItemRef]]:
        size = batch_size or self._state.config.cache.batch_size
        if size <= 0:
            raise InvalidInputError(f"batch size must be positive, got {size}")
        for start in range(0, len(items), size):
            yield items[start:start + size]

    def _cached_score(self, item: ContentItem, mode: RankingMode) -> ScoreResult:
        return self.score(item, mode)

    def _personal_ranker(self, config: RankingConfig) -> Ranker:
        """Ranker over *config* that scores without touching the shared cache."""
        scorer = Scorer(config)

        def score_uncached(item: ContentItem, mode: RankingMode) -> ScoreResult:
            validate_item(item, self._clock.now(), config.validation)
            return self._compute(scorer, item, mode, None)

        return Ranker(config, self._clock, score_uncached)

    def _compute(
        self,
        scorer: Scorer,
        item: ItemRef,
        mode: RankingMode,
        ab_group: str | None,
    ) -> ScoreResult:
        """Resolve every input for *item* and score it. Runs on cache misses."""
        started = time.perf_counter()
        now = self._clock.now()
        if isinstance(item, str):
            item = self._fetch_item(item)
            validate_item(item, now, scorer.config.validation)

        degraded: list[InsightCategory] = []
        votes, ok = self._resolve_votes(item, scorer.config.validation.recent_vote_window)
        if not ok:
            degraded.append(InsightCategory.VOTES)
        engagement, ok = self._resolve_engagement(item)
        if not ok:
            degraded.append(InsightCategory.ENGAGEMENT)
        creator, ok = self._resolve_creator(item)
        if not ok:
            degraded.append(InsightCategory.REPUTATION)

        result = scorer.score(
            item, votes, engagement, creator, now, mode, ab_group=ab_group, degraded=degraded
        )
        self._metrics.record_computation((time.perf_counter() - started) * 1000.0, now)
        return result

    def _fetch_item(self, content_id: str) -> ContentItem:
        store = self._sources.content
        if store is None:
            raise InvalidInputError(f"cannot resolve {content_id!r}: no content store configured")
        try:
            item = store.get(content_id)
        except Exception as exc:
            raise InvalidInputError(f"content store failed for {content_id!r}") from exc
        if item is None:
            raise InvalidInputError(f"unknown content id {content_id!r}")
        return item

    def _resolve_votes(
        self, item: ContentItem, max_window: int
    ) -> tuple[VoteAggregate, bool]:
        if item.votes is not None:
            validate_votes(item.content_id, item.votes, max_window)
            return item.votes, True
        if self._sources.votes is None:
            return VoteAggregate(), True

        def fetch() -> VoteAggregate:
            votes = self._sources.votes.aggregate(item.content_id)
            if votes is None:
                raise ValueError("no aggregate returned")
            validate_votes(item.content_id, votes, max_window)
            return votes

        return self._recover("votes", item.content_id, fetch, VoteAggregate)

    def _resolve_engagement(self, item: ContentItem) -> tuple[EngagementStats, bool]:
        if item.engagement is not None:
            validate_engagement(item.content_id, item.engagement, item.duration_seconds)
            return item.engagement, True
        if self._sources.engagement is None:
            return EngagementStats(), True

        def fetch() -> EngagementStats:
            stats = self._sources.engagement.stats(item.content_id)
            if stats is None:
                raise ValueError("no stats returned")
            validate_engagement(item.content_id, stats, item.duration_seconds)
            return stats

        return self._recover("engagement", item.content_id, fetch, EngagementStats)

    def _resolve_creator(self, item: ContentItem) -> tuple[CreatorReputation | None, bool]:
        if item.creator is not None:
            return item.creator, True
        if self._sources.reputation is None or not item.creator_id:
            return None, True
        return self._recover(
            "reputation",
            item.content_id,
            lambda: self._sources.reputation.lookup(item.creator_id),
            lambda: None,
        )

    @staticmethod
    def _recover(
        store: str,
        content_id: str,
        fetch: Callable[[], Any],
        default: Callable[[], Any],
    ) -> tuple[Any, bool]:
        """Run a store lookup, swapping any failure for *default*.

        Returns:
            ``(value, ok)`` where ``ok`` is ``False`` if the default was used.
        """
        try:
            return fetch(), True
        except Exception as exc:
            failure = DependencyFailure(store, content_id, exc)
            logger.warning("%s; using neutral defaults.", failure)
            return default(), False
