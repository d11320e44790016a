"""Offline reports: score distributions, creator leaderboards and mode comparisons."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime

import numpy as np

from ranking.engine import RankingEngine
from ranking.models import (
    ContentItem,
    CreatorReputation,
    Insight,
    RankedItem,
    RankingMode,
    ScoreResult,
)
from ranking.scorer import age_in_hours

# Normalised-score histogram edges: five 20-point bands over [0, 100].
_BAND_EDGES = np.linspace(0.0, 100.0, 6)


@dataclass(frozen=True)
class ItemAnalysis:
    content_id: str
    result: ScoreResult
    category: str
    game: str
    age_hours: float


@dataclass(frozen=True)
class RankingAnalysis:
    """Summary statistics plus per-item detail.

    Attributes:
        total_content: Number of items analysed.
        average_score: Mean normalised score (0 for an empty set).
        score_distribution: Band label (``"0-20"``...) -> item count.
        top_categories: Category -> mean normalised score, best first.
        generated_at: Reference time of the analysis.
        detailed: One entry per input item, in input order.
    """

    total_content: int
    average_score: float
    score_distribution: dict[str, int]
    top_categories: dict[str, float]
    generated_at: datetime
    detailed: tuple[ItemAnalysis, ...]


def ranking_analysis(
    engine: RankingEngine,
    items: Sequence[ContentItem],
    mode: RankingMode | str = RankingMode.HOT,
) -> RankingAnalysis:
    """Score *items* through *engine* and summarise the distribution."""
    now = engine.clock.now()
    results = engine.batch_score(items, mode=mode)
    detailed = tuple(
        ItemAnalysis(
            content_id=item.content_id,
            result=result,
            category=item.category,
            game=item.game,
            age_hours=age_in_hours(item.created_at, now),
        )
        for item, result in zip(items, results)
    )

    scores = np.array([d.result.normalized_score for d in detailed], dtype=np.float64)
    counts, _ = np.histogram(scores, bins=_BAND_EDGES)
    distribution = {
        f"{int(lo)}-{int(hi)}": int(n)
        for lo, hi, n in zip(_BAND_EDGES[:-1], _BAND_EDGES[1:], counts)
    }

    by_category: dict[str, list[float]] = defaultdict(list)
    for d in detailed:
        by_category[d.category or "uncategorized"].append(d.result.normalized_score)
    top_categories = dict(
        sorted(
            ((cat, float(np.mean(vals))) for cat, vals in by_category.items()),
            key=lambda kv: (-kv[1], kv[0]),
        )
    )

    return RankingAnalysis(
        total_content=len(detailed),
        average_score=float(scores.mean()) if scores.size else 0.0,
        score_distribution=distribution,
        top_categories=top_categories,
        generated_at=now,
        detailed=detailed,
    )


# ---------------------------------------------------------------------------
# Creator leaderboard
# ---------------------------------------------------------------------------

DEFAULT_LEADERBOARD_SIZE = 10


@dataclass(frozen=True)
class CreatorStanding:
    """Aggregate placement of one creator's items within a ranked feed.

    Views, likes and burned tokens come from the views embedded in the
    ranked items; items without them contribute 0.
    """

    creator_id: str
    creator: CreatorReputation | None
    total_score: float
    content_count: int
    average_rank: float
    best_rank: int
    total_views: int
    total_likes: int
    total_tokens_burned: int


def creator_leaderboard(
    ranked: Sequence[RankedItem], limit: int = DEFAULT_LEADERBOARD_SIZE
) -> list[CreatorStanding]:
    """Group a ranked feed by creator, best total composite score first.

    Items with no ``creator_id`` are left out.  Ties are broken by creator id.
    """
    grouped: dict[str, list[RankedItem]] = defaultdict(list)
    for entry in ranked:
        if entry.item.creator_id:
            grouped[entry.item.creator_id].append(entry)

    standings = []
    for creator_id, entries in grouped.items():
        ranks = [e.rank for e in entries]
        standings.append(
            CreatorStanding(
                creator_id=creator_id,
                creator=next((e.item.creator for e in entries if e.item.creator), None),
                total_score=sum(e.result.composite_score for e in entries),
                content_count=len(entries),
                average_rank=sum(ranks) / len(ranks),
                best_rank=min(ranks),
                total_views=sum(e.item.engagement.views for e in entries if e.item.engagement),
                total_likes=sum(e.item.engagement.likes for e in entries if e.item.engagement),
                total_tokens_burned=sum(
                    e.item.votes.total_tokens_burned for e in entries if e.item.votes
                ),
            )
        )
    standings.sort(key=lambda s: (-s.total_score, s.creator_id))
    return standings[: max(0, limit)]


# ---------------------------------------------------------------------------
# Cross-mode comparison
# ---------------------------------------------------------------------------

COMPARED_MODES = (RankingMode.TRENDING, RankingMode.HOT, RankingMode.TOP, RankingMode.NEW)


@dataclass(frozen=True)
class ModePerformance:
    """How one item scores, and optionally places, under a single mode.

    ``rank`` is ``None`` when no candidate pool was given or when the mode's
    filters drop the item from the pool.
    """

    mode: RankingMode
    composite_score: float
    normalized_score: float
    rank: int | None
    insights: tuple[Insight, ...]


def performance_across_modes(
    engine: RankingEngine,
    item: ContentItem,
    candidates: Iterable[ContentItem] = (),
    modes: Iterable[RankingMode | str] = COMPARED_MODES,
) -> dict[RankingMode, ModePerformance]:
    """Score *item* under each of *modes* and place it among *candidates*."""
    pool = [c for c in candidates if c.content_id != item.content_id]
    performance: dict[RankingMode, ModePerformance] = {}
    for requested in modes:
        mode = RankingMode.parse(requested)
        result = engine.score(item, mode=mode)
        rank = None
        if pool:
            ranked = engine.rank([item, *pool], mode=mode, limit=None)
            rank = next((r.rank for r in ranked if r.item.content_id == item.content_id), None)
        performance[mode] = ModePerformance(
            mode=mode,
            composite_score=result.composite_score,
            normalized_score=result.normalized_score,
            rank=rank,
            insights=result.insights,
        )
    return performance
