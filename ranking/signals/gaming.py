"""Gaming-fit signal: how well an item matches what the community plays."""

from __future__ import annotations

from ranking.config import GamingFactors
from ranking.models import ContentItem


def gaming_signal(item: ContentItem, factors: GamingFactors) -> float:
    """Compute the gaming-fit signal ``G``.

    Each table multiplier applies only when the item's key is present in
    that table; unknown games, categories and levels are neutral.
    """
    score = 1.0
    score *= factors.game_popularity.get(item.game, 1.0)
    score *= factors.category.get(item.category, 1.0)
    if item.skill_level:
        score *= factors.skill_level.get(item.skill_level.lower(), 1.0)
    if item.game_mode:
        score *= factors.competitive_mode.get(item.game_mode.lower(), 1.0)

    if item.tags & factors.competitive_tags:
        score *= factors.competitive_tag_boost

    return max(factors.floor, score)
