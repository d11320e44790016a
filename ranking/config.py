"""Immutable scoring configuration.

Every weight, table and threshold the engine uses lives in a single
:class:`RankingConfig` value.  Instances are frozen and their tables are
read-only mappings, so one config can be shared by every thread; changes
are made by building a new value (:func:`dataclasses.replace`,
:meth:`RankingConfig.with_cache` or :class:`ConfigOverlay`).
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from ranking.errors import InvalidInputError, UnknownModeError
from ranking.models import RankingMode


def _frozen(table: Mapping) -> Mapping:
    return MappingProxyType(dict(table))


# ---------------------------------------------------------------------------
# Signal weights
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class VoteWeights:
    upvote: float = 1.0
    downvote: float = -0.5
    super_vote: float = 3.0
    # (minimum average tokens per vote, multiplier), highest threshold first
    token_multipliers: tuple[tuple[float, float], ...] = ((4.0, 2.5), (3.0, 2.0), (2.0, 1.5))
    base_token_multiplier: float = 1.0
    velocity_threshold: float = 5.0  # votes per hour
    velocity_bonus: float = 0.3
    diversity_bonus: float = 0.2
    diversity_buckets: int = 8
    controversy_min_votes: int = 5


@dataclass(frozen=True)
class EngagementWeights:
    views: float = 0.1
    likes: float = 1.0
    comments: float = 2.0
    shares: float = 3.0
    bookmarks: float = 1.5
    click_through_rate: float = 5.0
    watch_time_ratio: float = 4000.0
    completion_rate: float = 3.0


@dataclass(frozen=True)
class TimeDecayConfig:
    trending_decay_hours: float = 6.0
    hot_decay_hours: float = 12.0
    new_window_hours: float = 72.0
    evergreen_threshold_days: float = 7.0
    evergreen_span_days: float = 365.0
    evergreen_floor: float = 0.1
    freshness_hours: float = 2.0
    freshness_bonus: float = 1.5
    floor: float = 0.01


@dataclass(frozen=True)
class GamingFactors:
    game_popularity: Mapping[str, float] = field(
        default_factory=lambda: _frozen(
            {
                "fortnite": 1.3,
                "call-of-duty": 1.2,
                "valorant": 1.2,
                "apex-legends": 1.1,
                "league-of-legends": 1.1,
                "counter-strike": 1.0,
                "overwatch": 1.0,
                "rocket-league": 0.9,
            }
        )
    )
    category: Mapping[str, float] = field(
        default_factory=lambda: _frozen(
            {
                "tournament": 1.5,
                "highlights": 1.2,
                "tutorials": 1.1,
                "reviews": 1.0,
                "funny": 0.9,
            }
        )
    )
    skill_level: Mapping[str, float] = field(
        default_factory=lambda: _frozen(
            {
                "beginner": 0.8,
                "intermediate": 1.0,
                "advanced": 1.3,
                "expert": 1.5,
                "professional": 2.0,
            }
        )
    )
    competitive_mode: Mapping[str, float] = field(
        default_factory=lambda: _frozen(
            {"casual": 0.9, "ranked": 1.2, "tournament": 1.5, "esports": 2.0}
        )
    )
    competitive_tags: frozenset[str] = frozenset(
        {"esports", "tournament", "championship", "competitive"}
    )
    competitive_tag_boost: float = 1.3
    floor: float = 0.5
    weight: float = 0.1  # gaming fit always contributes 10%


@dataclass(frozen=True)
class ReputationFactors:
    clan_status: Mapping[str, float] = field(
        default_factory=lambda: _frozen(
            {
                "member": 1.0,
                "officer": 1.1,
                "leader": 1.2,
                "founder": 1.3,
                "verified": 1.5,
            }
        )
    )
    achievement_tier: Mapping[str, float] = field(
        default_factory=lambda: _frozen(
            {
                "bronze": 1.0,
                "silver": 1.05,
                "gold": 1.1,
                "platinum": 1.15,
                "diamond": 1.2,
                "master": 1.25,
                "grandmaster": 1.3,
            }
        )
    )
    gamerscore_threshold: int = 1000
    gamerscore_scale: float = 1e-4
    gamerscore_max_bonus: float = 0.5
    verified_boost: float = 1.2


# ---------------------------------------------------------------------------
# Modes, A/B testing, cache
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModeWeights:
    """Per-mode weight vector.

    Attributes:
        vote: Weight on the vote signal.
        engagement: Weight on the engagement signal.
        time: Weight on the time-decay signal.
        controversy: Additive weight on the controversy signal.
        quality_floor: Minimum ``quality_score`` for an item to be ranked.
        default_window_hours: Time window used by the mode's preset feed;
            ``None`` means all time.
        description: Human-readable summary of the mode.
    """

    vote: float
    engagement: float
    time: float
    controversy: float = 0.0
    quality_floor: float | None = None
    default_window_hours: float | None = None
    description: str = ""


def _default_modes() -> Mapping[RankingMode, ModeWeights]:
    return _frozen(
        {
            RankingMode.TRENDING: ModeWeights(
                vote=0.1, engagement=0.3, time=0.6,
                default_window_hours=24,
                description="Content with high recent engagement and velocity",
            ),
            RankingMode.HOT: ModeWeights(
                vote=0.2, engagement=0.4, time=0.4,
                default_window_hours=48,
                description="Content with sustained high engagement recently",
            ),
            RankingMode.TOP: ModeWeights(
                vote=0.5, engagement=0.4, time=0.1,
                description="Highest quality content of all time",
            ),
            RankingMode.NEW: ModeWeights(
                vote=0.1, engagement=0.1, time=0.8,
                quality_floor=0.3,
                default_window_hours=72,
                description="Recent content with basic quality filter",
            ),
            RankingMode.CONTROVERSIAL: ModeWeights(
                vote=0.5, engagement=0.3, time=0.2, controversy=0.4,
                default_window_hours=168,
                description="Content with high engagement but mixed voting sentiment",
            ),
        }
    )


@dataclass(frozen=True)
class ABTestingConfig:
    """Deterministic weight-perturbation experiment.

    ``variations`` maps a group name to the (vote, engagement, time) weight
    ratios of that group.  ``groups`` fixes the order used when hashing
    content ids into groups.
    """

    enabled: bool = True
    groups: tuple[str, ...] = ("control", "variant_a", "variant_b")
    variations: Mapping[str, tuple[float, float, float]] = field(
        default_factory=lambda: _frozen(
            {
                "control": (1.0, 1.0, 1.0),
                "variant_a": (1.2, 0.9, 0.9),
                "variant_b": (0.9, 1.2, 0.9),
            }
        )
    )


@dataclass(frozen=True)
class CacheConfig:
    ttl_seconds: float = 300.0
    max_entries: int = 100
    bucket_seconds: int = 300
    batch_size: int = 100
    batch_pause_seconds: float = 0.0
    real_time_view_threshold: int = 10_000


@dataclass(frozen=True)
class ValidationConfig:
    clock_skew_seconds: float = 300.0
    max_tags: int = 15
    max_insights: int = 8
    recent_vote_window: int = 256


@dataclass(frozen=True)
class RankingConfig:
    """The full, immutable engine configuration."""

    votes: VoteWeights = field(default_factory=VoteWeights)
    engagement: EngagementWeights = field(default_factory=EngagementWeights)
    time_decay: TimeDecayConfig = field(default_factory=TimeDecayConfig)
    gaming: GamingFactors = field(default_factory=GamingFactors)
    reputation: ReputationFactors = field(default_factory=ReputationFactors)
    modes: Mapping[RankingMode, ModeWeights] = field(default_factory=_default_modes)
    ab_testing: ABTestingConfig = field(default_factory=ABTestingConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    validation: ValidationConfig = field(default_factory=ValidationConfig)

    def mode_weights(self, mode: RankingMode | str) -> ModeWeights:
        """Return the weight vector for *mode*.

        Raises:
            UnknownModeError: If the mode is not in the table.
        """
        parsed = RankingMode.parse(mode)
        try:
            return self.modes[parsed]
        except KeyError:
            raise UnknownModeError(f"mode {parsed.value!r} is not configured") from None

    def with_cache(self, **changes) -> RankingConfig:
        """Return a copy with the given :class:`CacheConfig` fields replaced."""
        return dataclasses.replace(self, cache=dataclasses.replace(self.cache, **changes))

    def with_ab_testing(self, enabled: bool) -> RankingConfig:
        return dataclasses.replace(
            self, ab_testing=dataclasses.replace(self.ab_testing, enabled=enabled)
        )


DEFAULT_CONFIG = RankingConfig()

# Bounds applied to per-user category preference multipliers.
MIN_PREFERENCE_MULTIPLIER = 0.1
MAX_PREFERENCE_MULTIPLIER = 3.0


@dataclass(frozen=True)
class ConfigOverlay:
    """A value-semantic adjustment layered on top of a shared config.

    Only categories already present in the base category table are
    adjusted; each multiplier is clamped before being applied.
    """

    category_multipliers: Mapping[str, float] = field(default_factory=lambda: _frozen({}))

    @classmethod
    def from_preferences(cls, preferences: Mapping[str, float]) -> ConfigOverlay:
        clamped = {}
        for category, multiplier in preferences.items():
            if multiplier is None:
                raise InvalidInputError(f"preference for {category!r} is missing a value")
            clamped[category.strip().lower()] = min(
                MAX_PREFERENCE_MULTIPLIER, max(MIN_PREFERENCE_MULTIPLIER, float(multiplier))
            )
        return cls(category_multipliers=_frozen(clamped))

    def apply(self, base: RankingConfig) -> RankingConfig:
        """Return a new config with the overlay applied; *base* is untouched."""
        if not self.category_multipliers:
            return base
        adjusted = dict(base.gaming.category)
        for category, multiplier in self.category_multipliers.items():
            if category in adjusted:
                adjusted[category] = adjusted[category] * multiplier
        gaming = dataclasses.replace(base.gaming, category=_frozen(adjusted))
        return dataclasses.replace(base, gaming=gaming)
