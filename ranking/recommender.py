"""Recommender: personalised feeds and similar-content lookups."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

import numpy as np

from ranking.config import ConfigOverlay, RankingConfig
from ranking.models import ContentItem, RankedItem, RankingMode, UserProfile
from ranking.ranker import Ranker

logger = logging.getLogger(__name__)

# Similarity weights
_GAME_WEIGHT = 0.4
_PLATFORM_WEIGHT = 0.2
_CATEGORY_WEIGHT = 0.2
_TAG_WEIGHT = 0.2

SIMILARITY_THRESHOLD = 0.3
DEFAULT_PERSONAL_LIMIT = 20
DEFAULT_SIMILAR_LIMIT = 10


def _same(a: str, b: str) -> bool:
    return bool(a) and a == b


def content_similarity(a: ContentItem, b: ContentItem) -> float:
    """Similarity of two items in ``[0, 1]``; symmetric in its arguments.

    ``0.4 [game] + 0.2 [platform] + 0.2 [category] + 0.2 * Jaccard(tags)``.
    Empty attributes never count as a match.
    """
    union = a.tags | b.tags
    jaccard = len(a.tags & b.tags) / max(1, len(union))
    return (
        _GAME_WEIGHT * _same(a.game, b.game)
        + _PLATFORM_WEIGHT * _same(a.platform, b.platform)
        + _CATEGORY_WEIGHT * _same(a.category, b.category)
        + _TAG_WEIGHT * jaccard
    )


def similarity_scores(base: ContentItem, candidates: Sequence[ContentItem]) -> np.ndarray:
    """Vectorised :func:`content_similarity` of *base* against every candidate.

    Tags are encoded as binary indicator rows over the joint tag vocabulary
    so intersection and union sizes come out of two matrix products.
    """
    if not candidates:
        return np.zeros(0, dtype=np.float64)

    vocabulary = sorted(base.tags.union(*(c.tags for c in candidates)))
    index = {tag: i for i, tag in enumerate(vocabulary)}

    tag_matrix = np.zeros((len(candidates), len(vocabulary)), dtype=np.float64)
    for row, item in enumerate(candidates):
        for tag in item.tags:
            tag_matrix[row, index[tag]] = 1.0
    base_vec = np.zeros(len(vocabulary), dtype=np.float64)
    for tag in base.tags:
        base_vec[index[tag]] = 1.0

    intersection = tag_matrix @ base_vec
    union = tag_matrix.sum(axis=1) + base_vec.sum() - intersection
    jaccard = intersection / np.maximum(1.0, union)

    game = np.array([_same(base.game, c.game) for c in candidates], dtype=np.float64)
    platform = np.array([_same(base.platform, c.platform) for c in candidates], dtype=np.float64)
    category = np.array([_same(base.category, c.category) for c in candidates], dtype=np.float64)

    return (
        _GAME_WEIGHT * game
        + _PLATFORM_WEIGHT * platform
        + _CATEGORY_WEIGHT * category
        + _TAG_WEIGHT * jaccard
    )


class Recommender:
    """Per-user feeds and "more like this" lookups on top of the ranker.

    Args:
        config_source: Returns the engine's current shared config snapshot.
        ranker_factory: Builds a :class:`~ranking.ranker.Ranker` for a given
            config.  Personalised configs must not share the engine's score
            cache, so the factory decides which scoring path to wire in.
    """

    def __init__(
        self,
        config_source: Callable[[], RankingConfig],
        ranker_factory: Callable[[RankingConfig], Ranker],
    ) -> None:
        self._config_source = config_source
        self._ranker_factory = ranker_factory

    def personalized(
        self,
        profile: UserProfile,
        candidates: Sequence[ContentItem],
        mode: RankingMode | str = RankingMode.HOT,
        limit: int | None = DEFAULT_PERSONAL_LIMIT,
        time_window_hours: float | None = None,
    ) -> list[RankedItem]:
        """Rank *candidates* for *profile*.

        Items outside the user's preferred games and platforms are dropped
        (each filter only applies when the profile lists any), then the
        user's category preferences are layered over a copy of the shared
        config and the survivors are ranked with it.
        """
        games = {g.strip().lower() for g in profile.preferred_games}
        platforms = {p.strip().lower() for p in profile.preferred_platforms}

        filtered = [
            c for c in candidates
            if (not games or c.game in games)
            and (not platforms or c.platform in platforms)
        ]

        base = self._config_source()
        overlay = ConfigOverlay.from_preferences(profile.content_type_preferences)
        ranker = self._ranker_factory(overlay.apply(base))
        logger.debug(
            "Personalised feed for %r: %d of %d candidates after preference filters.",
            profile.user_id,
            len(filtered),
            len(candidates),
        )
        return ranker.rank(
            filtered, mode=mode, limit=limit, time_window_hours=time_window_hours
        )

    def similar(
        self,
        base: ContentItem,
        candidates: Sequence[ContentItem],
        limit: int = DEFAULT_SIMILAR_LIMIT,
    ) -> list[tuple[ContentItem, float]]:
        """Return up to *limit* ``(item, similarity)`` pairs, most similar first.

        The base item itself and anything at or below the similarity
        threshold are excluded.  Ties are broken by content id.
        """
        pool = [c for c in candidates if c.content_id != base.content_id]
        scores = similarity_scores(base, pool)
        matches = [
            (item, float(score))
            for item, score in zip(pool, scores)
            if score > SIMILARITY_THRESHOLD
        ]
        matches.sort(key=lambda pair: (-pair[1], pair[0].content_id))
        return matches[: max(0, limit)]
