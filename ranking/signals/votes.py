"""Vote signal: weighted vote counts scaled by token burn, velocity and diversity."""

from __future__ import annotations

import zlib
from collections.abc import Iterable

from ranking.config import VoteWeights
from ranking.models import RecentVote, VoteAggregate


def token_multiplier(total_votes: int, tokens_burned: int, weights: VoteWeights) -> float:
    """Return the progressive multiplier for the average tokens burned per vote.

    Items with no votes or no burned tokens get the neutral multiplier 1.
    """
    if total_votes <= 0 or tokens_burned <= 0:
        return 1.0
    average = tokens_burned / total_votes
    for threshold, multiplier in weights.token_multipliers:
        if average >= threshold:
            return multiplier
    return weights.base_token_multiplier


def vote_velocity(total_votes: int, age_hours: float) -> float:
    """Votes per hour, treating anything younger than an hour as one hour old."""
    return total_votes / max(1.0, age_hours)


def voter_cohort(voter_id: str, buckets: int) -> int:
    """Stable cohort index for *voter_id* (CRC32, so it survives restarts)."""
    return zlib.crc32(voter_id.encode("utf-8")) % buckets


def voter_diversity(recent_votes: Iterable[RecentVote], buckets: int) -> float:
    """Share of voter cohorts represented in the recent-vote window, in [0, 1].

    An empty window has no evidence of diversity and yields 0.
    """
    if buckets <= 0:
        return 0.0
    seen = {voter_cohort(v.voter_id, buckets) for v in recent_votes}
    return len(seen) / buckets


def vote_signal(votes: VoteAggregate, age_hours: float, weights: VoteWeights) -> float:
    """Compute the vote signal ``V`` for one item.

    Steps: weighted base score, token multiplier, velocity bonus above
    ``weights.velocity_threshold`` votes/hour, then the diversity bonus.
    Negative totals are clamped to 0.
    """
    score = (
        votes.upvotes * weights.upvote
        + votes.downvotes * weights.downvote
        + votes.super_votes * weights.super_vote
    )
    total = votes.total_votes
    score *= token_multiplier(total, votes.total_tokens_burned, weights)

    if vote_velocity(total, age_hours) > weights.velocity_threshold:
        score *= 1.0 + weights.velocity_bonus

    diversity = voter_diversity(votes.recent_votes, weights.diversity_buckets)
    score *= 1.0 + diversity * weights.diversity_bonus
    return max(0.0, score)
