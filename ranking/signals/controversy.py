"""Controversy signal: how evenly split the up/down vote is."""

from __future__ import annotations

import math

from ranking.models import VoteAggregate


def controversy_signal(votes: VoteAggregate, min_votes: int = 5) -> float:
    """Return ``balance * ln(u + d + 1)``, or 0 below *min_votes* plain votes.

    ``balance`` is 1 for a perfect 50/50 split and 0 for a unanimous one.
    """
    total = votes.upvotes + votes.downvotes
    if total < min_votes:
        return 0.0
    ratio = votes.upvotes / total
    balance = 1.0 - abs(ratio - 0.5) * 2.0
    return balance * math.log(total + 1)
