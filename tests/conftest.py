"""Shared pytest fixtures for all ranking tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from ranking.clock import ManualClock
from ranking.config import DEFAULT_CONFIG
from ranking.engine import RankingEngine
from ranking.models import (
    AchievementTier,
    ClanStatus,
    ContentItem,
    ContentType,
    CreatorReputation,
    EngagementStats,
    VoteAggregate,
)

# Falls exactly on a 5-minute bucket boundary.
NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def _build_item(content_id: str = "c1", hours_old: float = 3.0, **overrides) -> ContentItem:
    """Build a valorant/pc/highlights video with empty votes and engagement."""
    fields = dict(
        content_id=content_id,
        created_at=NOW - timedelta(hours=hours_old),
        content_type=ContentType.VIDEO,
        platform="pc",
        category="highlights",
        game="valorant",
        tags=frozenset(),
        creator_id="creator-1",
        votes=VoteAggregate(),
        engagement=EngagementStats(),
    )
    fields.update(overrides)
    return ContentItem(**fields)


# ---------------------------------------------------------------------------
# Clock / engine fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_item():
    """Factory for test items; keyword overrides replace any field."""
    return _build_item


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(NOW)


@pytest.fixture
def engine(clock) -> RankingEngine:
    return RankingEngine(clock=clock)


@pytest.fixture
def plain_engine(clock) -> RankingEngine:
    """Engine with A/B perturbation switched off, for exact-value tests."""
    return RankingEngine(config=DEFAULT_CONFIG.with_ab_testing(False), clock=clock)


# ---------------------------------------------------------------------------
# Scenario items
# ---------------------------------------------------------------------------


@pytest.fixture
def item_a() -> ContentItem:
    """Heavy-burn valorant highlight from a verified grandmaster."""
    return _build_item(
        "A",
        hours_old=3.0,
        tags=frozenset({"esports", "competitive"}),
        votes=VoteAggregate(upvotes=100, downvotes=10, super_votes=5, total_tokens_burned=30),
        engagement=EngagementStats(
            views=10000, likes=500, comments=50, shares=10, bookmarks=0,
            click_through_rate=0.08,
        ),
        creator=CreatorReputation(
            clan_status=ClanStatus.VERIFIED,
            achievement_tier=AchievementTier.GRANDMASTER,
            gamerscore=5000,
            verified=True,
        ),
    )


@pytest.fixture
def item_d() -> ContentItem:
    """Evenly split vote with a busy comment thread, two days old."""
    return _build_item(
        "D",
        hours_old=48.0,
        votes=VoteAggregate(upvotes=50, downvotes=48),
        engagement=EngagementStats(comments=200),
    )
