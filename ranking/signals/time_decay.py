"""Mode-dependent time decay."""

from __future__ import annotations

import math

from ranking.config import TimeDecayConfig
from ranking.models import RankingMode


def time_signal(age_hours: float, mode: RankingMode, decay: TimeDecayConfig) -> float:
    """Compute the time signal ``T`` for an item *age_hours* old.

    ========================  ==================================
    Mode                      Decay
    ========================  ==================================
    trending                  ``exp(-h / 6)``
    hot                       ``exp(-h / 12)``
    new                       linear to 0 over 72 hours
    top, or older than 7 days ``max(0.1, 1 - days / 365)``
    anything else             1
    ========================  ==================================

    Items younger than the freshness window get a 1.5x bonus; the result
    never drops below ``decay.floor``.
    """
    age_hours = max(0.0, age_hours)
    age_days = age_hours / 24.0

    if mode == RankingMode.TRENDING:
        score = math.exp(-age_hours / decay.trending_decay_hours)
    elif mode == RankingMode.HOT:
        score = math.exp(-age_hours / decay.hot_decay_hours)
    elif mode == RankingMode.NEW:
        score = max(0.0, 1.0 - age_hours / decay.new_window_hours)
    elif mode == RankingMode.TOP or age_days > decay.evergreen_threshold_days:
        score = max(decay.evergreen_floor, 1.0 - age_days / decay.evergreen_span_days)
    else:
        score = 1.0

    if age_hours < decay.freshness_hours:
        score *= decay.freshness_bonus

    return max(decay.floor, score)
