"""Core domain dataclasses shared across all ranking modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from ranking.errors import UnknownModeError


class ContentType(str, Enum):
    """Media kinds a content item can have."""

    VIDEO = "video"
    IMAGE = "image"
    DOC = "doc"
    AUDIO = "audio"
    STREAM = "stream"


class RankingMode(str, Enum):
    """The closed set of feed orderings the engine supports."""

    TRENDING = "trending"
    HOT = "hot"
    TOP = "top"
    NEW = "new"
    CONTROVERSIAL = "controversial"

    @classmethod
    def parse(cls, value: RankingMode | str) -> RankingMode:
        """Turn an edge string (case-insensitive) into a mode.

        Raises:
            UnknownModeError: If *value* names no known mode.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise UnknownModeError(f"unknown ranking mode: {value!r}") from None


class ClanStatus(str, Enum):
    MEMBER = "member"
    OFFICER = "officer"
    LEADER = "leader"
    FOUNDER = "founder"
    VERIFIED = "verified"


class AchievementTier(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"
    DIAMOND = "diamond"
    MASTER = "master"
    GRANDMASTER = "grandmaster"


class VoteKind(str, Enum):
    UP = "up"
    DOWN = "down"
    SUPER = "super"


class InsightKind(str, Enum):
    POSITIVE = "positive"
    TRENDING = "trending"
    WARNING = "warning"


class InsightCategory(str, Enum):
    VOTES = "votes"
    ENGAGEMENT = "engagement"
    TIME = "time"
    GAMING = "gaming"
    REPUTATION = "reputation"


class Impact(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


def as_utc(ts: datetime) -> datetime:
    """Return *ts* as an aware UTC datetime; naive values are taken as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


@dataclass
class RecentVote:
    """One entry of the bounded recent-vote window."""

    voter_id: str
    timestamp: datetime


@dataclass
class VoteAggregate:
    """Folded vote counters for a single content item.

    Attributes:
        upvotes: Plain upvotes.
        downvotes: Plain downvotes.
        super_votes: Token-backed super votes; each burned at least one token.
        total_tokens_burned: Tokens burned across all votes on the item.
        recent_votes: The most recent votes, oldest first. Bounded by the
            store that produces the aggregate (256 by default).
    """

    upvotes: int = 0
    downvotes: int = 0
    super_votes: int = 0
    total_tokens_burned: int = 0
    recent_votes: list[RecentVote] = field(default_factory=list)

    @property
    def total_votes(self) -> int:
        return self.upvotes + self.downvotes + self.super_votes


@dataclass
class EngagementStats:
    """Telemetry counters for a single content item."""

    views: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0
    bookmarks: int = 0
    click_through_rate: float = 0.0
    watch_time_seconds: float = 0.0
    completion_rate: float = 0.0


@dataclass
class CreatorReputation:
    """Community standing of a content creator."""

    clan_status: ClanStatus = ClanStatus.MEMBER
    achievement_tier: AchievementTier = AchievementTier.BRONZE
    gamerscore: int = 0
    verified: bool = False

    def __post_init__(self) -> None:
        self.clan_status = ClanStatus(self.clan_status)
        self.achievement_tier = AchievementTier(self.achievement_tier)


@dataclass
class ContentItem:
    """A single piece of community content as seen by the engine.

    The item is a read-only view. ``votes``, ``engagement`` and ``creator``
    may be embedded by the host; anything left as ``None`` is looked up in
    the configured stores when the item is scored.

    Attributes:
        content_id: Stable identifier.
        created_at: Creation time. Naive datetimes are treated as UTC.
        content_type: Media kind.
        platform: Platform the content was captured on (``"pc"``, ``"xbox"``...).
        category: Content category (``"highlights"``, ``"tutorials"``...).
        game: Game title, normalised to lowercase.
        tags: Short lowercase labels, at most 15.
        creator_id: Identifier used to look up the creator's reputation.
        duration_seconds: Media length for video and audio.
        skill_level: Optional difficulty label (``"expert"``...).
        game_mode: Optional competitive context (``"ranked"``...).
        quality_score: Precomputed quality attribute used by quality floors.
    """

    content_id: str
    created_at: datetime
    content_type: ContentType = ContentType.VIDEO
    platform: str = ""
    category: str = ""
    game: str = ""
    tags: frozenset[str] = frozenset()
    creator_id: str = ""
    duration_seconds: float | None = None
    skill_level: str | None = None
    game_mode: str | None = None
    quality_score: float | None = None
    votes: VoteAggregate | None = None
    engagement: EngagementStats | None = None
    creator: CreatorReputation | None = None

    def __post_init__(self) -> None:
        self.created_at = as_utc(self.created_at)
        self.content_type = ContentType(self.content_type)
        self.game = (self.game or "").strip().lower()
        self.platform = (self.platform or "").strip().lower()
        self.category = (self.category or "").strip().lower()
        self.tags = frozenset(t.strip().lower() for t in self.tags if t and t.strip())


@dataclass
class VoteRecord:
    """A single validated vote, as delivered by the ingestion pipeline."""

    content_id: str
    voter_id: str
    kind: VoteKind
    tokens_burned: int
    timestamp: datetime

    def __post_init__(self) -> None:
        self.kind = VoteKind(self.kind)
        self.timestamp = as_utc(self.timestamp)


@dataclass
class UserProfile:
    """Per-request personalisation snapshot.

    Attributes:
        user_id: Unique identifier for the user.
        preferred_games: Lowercase game titles; empty means "any game".
        preferred_platforms: Lowercase platforms; empty means "any platform".
        content_type_preferences: Category -> multiplier. Values are clamped
            to ``[0.1, 3.0]`` when applied.
    """

    user_id: str
    preferred_games: set[str] = field(default_factory=set)
    preferred_platforms: set[str] = field(default_factory=set)
    content_type_preferences: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class Insight:
    kind: InsightKind
    category: InsightCategory
    impact: Impact
    message: str = ""


@dataclass(frozen=True)
class SignalComponents:
    """The six scalar signals a composite score is built from."""

    vote: float
    engagement: float
    time: float
    gaming: float
    reputation: float
    controversy: float


@dataclass(frozen=True)
class ScoreResult:
    """Outcome of scoring one item under one mode."""

    content_id: str
    composite_score: float
    normalized_score: float
    components: SignalComponents
    mode: RankingMode
    ab_group: str
    generated_at: datetime
    insights: tuple[Insight, ...] = ()


@dataclass(frozen=True)
class RankedItem:
    """A scored item with its position in a ranked feed."""

    item: ContentItem
    result: ScoreResult
    rank: int
    mode: RankingMode
    total_candidates: int
    percentile: float
    ranked_at: datetime
