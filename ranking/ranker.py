"""Ranker: filters a candidate set, scores the survivors and orders them."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import timedelta

from ranking.clock import Clock
from ranking.config import RankingConfig
from ranking.errors import InvalidInputError
from ranking.models import ContentItem, RankedItem, RankingMode, ScoreResult

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50

ScoreFn = Callable[[ContentItem, RankingMode], ScoreResult]


@dataclass(frozen=True)
class RankFilters:
    """Optional candidate predicates.

    Attributes:
        game: Keep only items for this game (case-insensitive).
        platform: Keep only items on this platform (case-insensitive).
        tags: Keep only items sharing at least one of these tags.
    """

    game: str | None = None
    platform: str | None = None
    tags: frozenset[str] = field(default_factory=frozenset)

    def matches(self, item: ContentItem) -> bool:
        if self.game and item.game != self.game.strip().lower():
            return False
        if self.platform and item.platform != self.platform.strip().lower():
            return False
        if self.tags and not (item.tags & {t.strip().lower() for t in self.tags}):
            return False
        return True


def sort_key(entry: tuple[ContentItem, ScoreResult]) -> tuple[float, float, str]:
    """Descending score, then newer first, then id ascending."""
    item, result = entry
    return (-result.composite_score, -item.created_at.timestamp(), item.content_id)


class Ranker:
    """Produces an ordered, annotated feed from a candidate sequence.

    Pipeline: time window -> predicate filters -> mode quality floor ->
    score every survivor -> sort -> truncate -> attach rank metadata.

    Args:
        config: Config snapshot supplying the mode table.
        clock: Time source for window cut-offs and ``ranked_at`` stamps.
        score_fn: Scores one item under one mode.  The engine passes its
            cache-backed scorer here.
    """

    def __init__(self, config: RankingConfig, clock: Clock, score_fn: ScoreFn) -> None:
        self._config = config
        self._clock = clock
        self._score = score_fn

    def rank(
        self,
        candidates: Iterable[ContentItem],
        mode: RankingMode | str = RankingMode.HOT,
        limit: int | None = DEFAULT_LIMIT,
        time_window_hours: float | None = None,
        filters: RankFilters | None = None,
    ) -> list[RankedItem]:
        """Rank *candidates* under *mode*.

        Args:
            candidates: Items to consider.
            mode: Ranking mode (enum or edge string).
            limit: Maximum number of results; ``None`` keeps all.
            time_window_hours: If set, drop items created before
                ``now - time_window_hours``.
            filters: Optional game/platform/tag predicates.

        Returns:
            Ranked items, best first, with 1-based ranks.

        Raises:
            UnknownModeError: If *mode* is not configured.
            InvalidInputError: If *limit* or *time_window_hours* is negative.
        """
        mode = RankingMode.parse(mode)
        weights = self._config.mode_weights(mode)
        if limit is not None and limit < 0:
            raise InvalidInputError(f"limit must be non-negative, got {limit}")
        if time_window_hours is not None and time_window_hours < 0:
            raise InvalidInputError(f"time window must be non-negative, got {time_window_hours}")

        now = self._clock.now()
        survivors = list(candidates)
        if time_window_hours is not None:
            cutoff = now - timedelta(hours=time_window_hours)
            survivors = [c for c in survivors if c.created_at >= cutoff]
        if filters is not None:
            survivors = [c for c in survivors if filters.matches(c)]
        if weights.quality_floor is not None:
            floor = weights.quality_floor
            survivors = [c for c in survivors if (c.quality_score or 0.0) >= floor]

        scored = [(item, self._score(item, mode)) for item in survivors]
        scored.sort(key=sort_key)
        if limit is not None:
            scored = scored[:limit]

        total = len(survivors)
        ranked = [
            RankedItem(
                item=item,
                result=result,
                rank=position,
                mode=mode,
                total_candidates=total,
                percentile=(total - position + 1) / total * 100.0,
                ranked_at=now,
            )
            for position, (item, result) in enumerate(scored, start=1)
        ]
        logger.debug(
            "Ranked %d of %d candidates under %s.", len(ranked), total, mode.value
        )
        return ranked
