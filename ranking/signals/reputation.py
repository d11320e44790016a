"""Creator reputation multiplier."""

from __future__ import annotations

from ranking.config import ReputationFactors
from ranking.models import CreatorReputation


def reputation_signal(creator: CreatorReputation | None, factors: ReputationFactors) -> float:
    """Compute the reputation multiplier ``R``; an unknown creator is neutral."""
    if creator is None:
        return 1.0

    score = 1.0
    score *= factors.clan_status.get(creator.clan_status.value, 1.0)
    score *= factors.achievement_tier.get(creator.achievement_tier.value, 1.0)

    if creator.gamerscore > factors.gamerscore_threshold:
        bonus = min(factors.gamerscore_max_bonus, creator.gamerscore * factors.gamerscore_scale)
        score *= 1.0 + bonus

    if creator.verified:
        score *= factors.verified_boost
    return score
