"""Scorer: turns the six signals into a composite and normalized score."""

from __future__ import annotations

import hashlib
import logging
import math
from collections.abc import Iterable
from datetime import datetime

from ranking.config import ModeWeights, RankingConfig
from ranking.errors import InternalError, InvalidInputError
from ranking.models import (
    ContentItem,
    CreatorReputation,
    EngagementStats,
    Impact,
    Insight,
    InsightCategory,
    InsightKind,
    RankingMode,
    ScoreResult,
    SignalComponents,
    VoteAggregate,
)
from ranking.signals.controversy import controversy_signal
from ranking.signals.engagement import engagement_signal
from ranking.signals.gaming import gaming_signal
from ranking.signals.reputation import reputation_signal
from ranking.signals.time_decay import time_signal
from ranking.signals.votes import vote_signal

logger = logging.getLogger(__name__)

# Insight thresholds
_STRONG_VOTES = 50.0
_RISING_VOTES = 10.0
_RISING_AGE_HOURS = 2.0
_HIGH_ENGAGEMENT_RATE = 0.1
_HIGH_GAMING_FIT = 1.5
_HIGH_REPUTATION = 1.5

_WARNING_MESSAGES = {
    InsightCategory.VOTES: "Vote data unavailable; vote signal defaulted",
    InsightCategory.ENGAGEMENT: "Engagement data unavailable; engagement signal defaulted",
    InsightCategory.REPUTATION: "Creator reputation unavailable; neutral multiplier used",
}


def normalize_score(composite: float) -> float:
    """Map a composite score onto ``[0, 100]`` with ``ln(S + 1) * 20``."""
    if composite <= 0:
        return 0.0
    return min(100.0, max(0.0, math.log(composite + 1.0) * 20.0))


def age_in_hours(created_at: datetime, now: datetime) -> float:
    """Hours between *created_at* and *now*; items within clock skew count as brand new."""
    return max(0.0, (now - created_at).total_seconds() / 3600.0)


class Scorer:
    """Combines signals under a mode's weight vector.

    The scorer is stateless apart from its config, so one instance can be
    shared across threads.  It never touches stores or caches; the engine
    resolves all inputs first.

    Args:
        config: The configuration snapshot to score with.
    """

    def __init__(self, config: RankingConfig) -> None:
        self._config = config

    @property
    def config(self) -> RankingConfig:
        return self._config

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def score(
        self,
        item: ContentItem,
        votes: VoteAggregate,
        engagement: EngagementStats,
        creator: CreatorReputation | None,
        now: datetime,
        mode: RankingMode,
        ab_group: str | None = None,
        degraded: Iterable[InsightCategory] = (),
    ) -> ScoreResult:
        """Score one fully resolved item.

        Args:
            item: The content being scored.
            votes: Vote aggregate for the item.
            engagement: Engagement counters for the item.
            creator: Creator reputation, or ``None`` for an unknown creator.
            now: Reference time for age computations.
            mode: Ranking mode.
            ab_group: Experiment group; defaults to the item's hashed group.
            degraded: Signal categories whose inputs had to be defaulted.
                Each produces a warning insight.

        Returns:
            The :class:`~ranking.models.ScoreResult`.

        Raises:
            InvalidInputError: If *ab_group* is not a configured group.
            InternalError: If the composite comes out negative.
        """
        weights = self._config.mode_weights(mode)
        group = ab_group or self.assign_ab_group(item.content_id)
        if group not in self._config.ab_testing.variations:
            raise InvalidInputError(f"unknown A/B test group: {group!r}")

        age_hours = age_in_hours(item.created_at, now)
        components = self.compute_signals(item, votes, engagement, creator, age_hours, mode)
        composite = self.composite(components, weights, self.ab_factor(group, weights))
        if composite < 0 or math.isnan(composite):
            raise InternalError(
                f"composite score for {item.content_id!r} is {composite!r}"
            )

        insights = self.build_insights(engagement, components, age_hours, degraded)
        logger.debug(
            "Scored %r mode=%s group=%s composite=%.4f", item.content_id, mode.value, group, composite
        )
        return ScoreResult(
            content_id=item.content_id,
            composite_score=composite,
            normalized_score=normalize_score(composite),
            components=components,
            mode=mode,
            ab_group=group,
            generated_at=now,
            insights=insights,
        )

    def compute_signals(
        self,
        item: ContentItem,
        votes: VoteAggregate,
        engagement: EngagementStats,
        creator: CreatorReputation | None,
        age_hours: float,
        mode: RankingMode,
    ) -> SignalComponents:
        cfg = self._config
        return SignalComponents(
            vote=vote_signal(votes, age_hours, cfg.votes),
            engagement=engagement_signal(
                engagement, item.content_type, item.duration_seconds, cfg.engagement
            ),
            time=time_signal(age_hours, mode, cfg.time_decay),
            gaming=gaming_signal(item, cfg.gaming),
            reputation=reputation_signal(creator, cfg.reputation),
            controversy=controversy_signal(votes, cfg.votes.controversy_min_votes),
        )

    def composite(
        self, components: SignalComponents, weights: ModeWeights, ab_factor: float = 1.0
    ) -> float:
        """``((w_v V + w_e E + w_t T + 0.1 G) R) * ab_factor + w_c C``, floored at 0."""
        base = (
            components.vote * weights.vote
            + components.engagement * weights.engagement
            + components.time * weights.time
            + components.gaming * self._config.gaming.weight
        ) * components.reputation
        score = base * ab_factor + components.controversy * weights.controversy
        return max(0.0, score)

    def assign_ab_group(self, content_id: str) -> str:
        """Deterministically map *content_id* onto one of the experiment groups."""
        groups = self._config.ab_testing.groups
        digest = hashlib.sha1(content_id.encode("utf-8")).digest()
        return groups[int.from_bytes(digest[:4], "big") % len(groups)]

    def ab_factor(self, group: str, weights: ModeWeights) -> float:
        """Renormalised weight ratio for *group*; 1.0 when experiments are off."""
        ab = self._config.ab_testing
        if not ab.enabled:
            return 1.0
        vote_ratio, engagement_ratio, time_ratio = ab.variations[group]
        total = weights.vote + weights.engagement + weights.time
        if total <= 0:
            return 1.0
        return (
            vote_ratio * weights.vote
            + engagement_ratio * weights.engagement
            + time_ratio * weights.time
        ) / total

    def build_insights(
        self,
        engagement: EngagementStats,
        components: SignalComponents,
        age_hours: float,
        degraded: Iterable[InsightCategory] = (),
    ) -> tuple[Insight, ...]:
        insights: list[Insight] = []

        for category in degraded:
            insights.append(
                Insight(
                    InsightKind.WARNING,
                    category,
                    Impact.MEDIUM,
                    _WARNING_MESSAGES.get(category, "Signal input unavailable"),
                )
            )

        if components.vote > _STRONG_VOTES:
            insights.append(
                Insight(
                    InsightKind.POSITIVE,
                    InsightCategory.VOTES,
                    Impact.HIGH,
                    "Strong community voting support",
                )
            )

        rate = (engagement.likes + engagement.comments) / max(1, engagement.views)
        if rate > _HIGH_ENGAGEMENT_RATE:
            insights.append(
                Insight(
                    InsightKind.POSITIVE,
                    InsightCategory.ENGAGEMENT,
                    Impact.MEDIUM,
                    "High engagement rate indicates quality content",
                )
            )

        if age_hours < _RISING_AGE_HOURS and components.vote > _RISING_VOTES:
            insights.append(
                Insight(
                    InsightKind.TRENDING,
                    InsightCategory.TIME,
                    Impact.HIGH,
                    "Rapidly gaining traction",
                )
            )

        if components.gaming > _HIGH_GAMING_FIT:
            insights.append(
                Insight(
                    InsightKind.POSITIVE,
                    InsightCategory.GAMING,
                    Impact.MEDIUM,
                    "High relevance for competitive gaming community",
                )
            )

        if components.reputation > _HIGH_REPUTATION:
            insights.append(
                Insight(
                    InsightKind.POSITIVE,
                    InsightCategory.REPUTATION,
                    Impact.MEDIUM,
                    "Established creator",
                )
            )

        return tuple(insights[: self._config.validation.max_insights])
