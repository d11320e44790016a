"""Preset feeds built on :meth:`RankingEngine.rank`.

Each mode preset applies the mode's default time window from the config
table unless the caller passes one explicitly.
"""

from __future__ import annotations

from collections.abc import Iterable

from ranking.engine import RankingEngine
from ranking.models import ContentItem, RankedItem, RankingMode
from ranking.ranker import DEFAULT_LIMIT, RankFilters

_UNSET = object()

COMPETITIVE_GAME_MODES = frozenset({"ranked", "competitive", "tournament"})
COMPETITIVE_TAGS = frozenset({"esports", "tournament", "competitive", "ranked"})
CASUAL_GAME_MODES = frozenset({"casual", "fun", "creative"})
CASUAL_TAGS = frozenset({"funny", "casual", "creative", "meme"})


class RankingModes:
    """One method per ranking mode, each with that mode's default window.

    Args:
        engine: The engine to rank with.
    """

    def __init__(self, engine: RankingEngine) -> None:
        self._engine = engine

    def feed(
        self,
        mode: RankingMode | str,
        candidates: Iterable[ContentItem],
        limit: int | None = DEFAULT_LIMIT,
        time_window_hours: float | None | object = _UNSET,
        filters: RankFilters | None = None,
    ) -> list[RankedItem]:
        """Rank under *mode*; an omitted window means the mode's default window.

        Pass ``time_window_hours=None`` explicitly to rank over all time.
        """
        mode = RankingMode.parse(mode)
        if time_window_hours is _UNSET:
            time_window_hours = self._engine.config.mode_weights(mode).default_window_hours
        return self._engine.rank(
            candidates,
            mode=mode,
            limit=limit,
            time_window_hours=time_window_hours,
            filters=filters,
        )

    def trending(self, candidates: Iterable[ContentItem], **kwargs) -> list[RankedItem]:
        return self.feed(RankingMode.TRENDING, candidates, **kwargs)

    def hot(self, candidates: Iterable[ContentItem], **kwargs) -> list[RankedItem]:
        return self.feed(RankingMode.HOT, candidates, **kwargs)

    def top(self, candidates: Iterable[ContentItem], **kwargs) -> list[RankedItem]:
        return self.feed(RankingMode.TOP, candidates, **kwargs)

    def new(self, candidates: Iterable[ContentItem], **kwargs) -> list[RankedItem]:
        return self.feed(RankingMode.NEW, candidates, **kwargs)

    def controversial(self, candidates: Iterable[ContentItem], **kwargs) -> list[RankedItem]:
        return self.feed(RankingMode.CONTROVERSIAL, candidates, **kwargs)


def game_trending(
    engine: RankingEngine,
    candidates: Iterable[ContentItem],
    game: str,
    limit: int | None = DEFAULT_LIMIT,
) -> list[RankedItem]:
    """Trending feed restricted to a single game over the last 24 hours."""
    return RankingModes(engine).trending(
        candidates, limit=limit, filters=RankFilters(game=game)
    )


def is_competitive(item: ContentItem) -> bool:
    if item.game_mode and item.game_mode.lower() in COMPETITIVE_GAME_MODES:
        return True
    return bool(item.tags & COMPETITIVE_TAGS)


def is_casual(item: ContentItem) -> bool:
    if not item.game_mode or item.game_mode.lower() in CASUAL_GAME_MODES:
        return True
    return bool(item.tags & CASUAL_TAGS)


def competitive_feed(
    engine: RankingEngine,
    candidates: Iterable[ContentItem],
    limit: int | None = DEFAULT_LIMIT,
) -> list[RankedItem]:
    """Hot feed of ranked, tournament and esports content."""
    return engine.rank(
        [c for c in candidates if is_competitive(c)], mode=RankingMode.HOT, limit=limit
    )


def casual_feed(
    engine: RankingEngine,
    candidates: Iterable[ContentItem],
    limit: int | None = DEFAULT_LIMIT,
) -> list[RankedItem]:
    """Hot feed of casual, fun and creative content."""
    return engine.rank(
        [c for c in candidates if is_casual(c)], mode=RankingMode.HOT, limit=limit
    )
