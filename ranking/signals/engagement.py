"""Engagement signal from telemetry counters."""

from __future__ import annotations

from ranking.config import EngagementWeights
from ranking.models import ContentType, EngagementStats


def watch_time_ratio(stats: EngagementStats, duration_seconds: float | None) -> float:
    """Average fraction of the media watched per view."""
    duration = duration_seconds or 1.0
    return stats.watch_time_seconds / max(1.0, stats.views * duration)


def engagement_rate(stats: EngagementStats) -> float:
    """Interactions (likes, comments, shares) per view."""
    return (stats.likes + stats.comments + stats.shares) / max(1, stats.views)


def engagement_signal(
    stats: EngagementStats,
    content_type: ContentType,
    duration_seconds: float | None,
    weights: EngagementWeights,
) -> float:
    """Compute the engagement signal ``E``.

    Watch-time and completion terms only count for videos.  The weighted
    sum is then scaled by ``1 + engagement_rate``.
    """
    score = (
        stats.views * weights.views
        + stats.likes * weights.likes
        + stats.comments * weights.comments
        + stats.shares * weights.shares
        + stats.bookmarks * weights.bookmarks
        + stats.click_through_rate * weights.click_through_rate
    )
    if content_type == ContentType.VIDEO:
        score += watch_time_ratio(stats, duration_seconds) * weights.watch_time_ratio
        score += stats.completion_rate * weights.completion_rate

    score *= 1.0 + engagement_rate(stats)
    return max(0.0, score)
