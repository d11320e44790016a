"""Input checks applied before an item is scored."""

from __future__ import annotations

from datetime import datetime, timedelta

from ranking.config import ValidationConfig
from ranking.errors import InvalidInputError
from ranking.models import ContentItem, EngagementStats, VoteAggregate


def _require_non_negative(owner: str, **counts: float) -> None:
    for name, value in counts.items():
        if value is None or value < 0:
            raise InvalidInputError(f"{owner}.{name} must be non-negative, got {value!r}")


def _require_rate(owner: str, **rates: float) -> None:
    for name, value in rates.items():
        if value is None or not 0.0 <= value <= 1.0:
            raise InvalidInputError(f"{owner}.{name} must be within [0, 1], got {value!r}")


def validate_item(item: ContentItem, now: datetime, limits: ValidationConfig) -> None:
    """Check the item's own attributes.

    Raises:
        InvalidInputError: On a missing id, a creation time further in the
            future than the allowed clock skew, too many tags, or negative
            duration / quality values.
    """
    if item is None:
        raise InvalidInputError("content item is missing")
    if not item.content_id:
        raise InvalidInputError("content item has no id")
    if item.created_at > now + timedelta(seconds=limits.clock_skew_seconds):
        raise InvalidInputError(
            f"content {item.content_id!r} created in the future ({item.created_at.isoformat()})"
        )
    if len(item.tags) > limits.max_tags:
        raise InvalidInputError(
            f"content {item.content_id!r} has {len(item.tags)} tags (max {limits.max_tags})"
        )
    if item.duration_seconds is not None:
        _require_non_negative(item.content_id, duration_seconds=item.duration_seconds)
    if item.quality_score is not None:
        _require_non_negative(item.content_id, quality_score=item.quality_score)


def validate_votes(
    content_id: str, votes: VoteAggregate, max_window: int | None = None
) -> None:
    """Check a vote aggregate's counters and invariants.

    *max_window* bounds the recent-vote window; ``None`` leaves it unbounded.
    """
    _require_non_negative(
        f"{content_id}.votes",
        upvotes=votes.upvotes,
        downvotes=votes.downvotes,
        super_votes=votes.super_votes,
        total_tokens_burned=votes.total_tokens_burned,
    )
    if votes.total_tokens_burned < votes.super_votes:
        raise InvalidInputError(
            f"{content_id}: {votes.super_votes} super votes but only "
            f"{votes.total_tokens_burned} tokens burned"
        )
    if len(votes.recent_votes) > votes.total_votes:
        raise InvalidInputError(
            f"{content_id}: recent-vote window longer than the total vote count"
        )
    if max_window is not None and len(votes.recent_votes) > max_window:
        raise InvalidInputError(
            f"{content_id}: recent-vote window holds {len(votes.recent_votes)} votes, "
            f"limit is {max_window}"
        )


def validate_engagement(
    content_id: str, stats: EngagementStats, duration_seconds: float | None = None
) -> None:
    """Check engagement counters, rates and the watch-time bound."""
    owner = f"{content_id}.engagement"
    _require_non_negative(
        owner,
        views=stats.views,
        likes=stats.likes,
        comments=stats.comments,
        shares=stats.shares,
        bookmarks=stats.bookmarks,
        watch_time_seconds=stats.watch_time_seconds,
    )
    _require_rate(
        owner,
        click_through_rate=stats.click_through_rate,
        completion_rate=stats.completion_rate,
    )
    if duration_seconds:
        ceiling = stats.views * duration_seconds
        if stats.watch_time_seconds > ceiling * (1 + 1e-9):
            raise InvalidInputError(
                f"{owner}.watch_time_seconds {stats.watch_time_seconds} exceeds "
                f"views x duration ({ceiling})"
            )
