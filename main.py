"""Entry point: wires an engine from the environment and ranks a JSON candidate file.

Usage::

    python main.py candidates.json [mode]

The file holds a list of content objects.  Each may embed ``votes``,
``engagement`` and ``creator`` objects; the ranked feed is printed to
stdout as JSON.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import config
from ranking.config import DEFAULT_CONFIG, RankingConfig
from ranking.engine import RankingEngine
from ranking.errors import RankingError
from ranking.feeds import RankingModes
from ranking.models import (
    ContentItem,
    CreatorReputation,
    EngagementStats,
    RankedItem,
    RecentVote,
    VoteAggregate,
)
from ranking.stores import DataSources, InMemoryContentStore, InMemoryVoteStore

logger = logging.getLogger(__name__)


def build_config() -> RankingConfig:
    """Return the default config with the environment overrides from :mod:`config`."""
    base = DEFAULT_CONFIG.with_cache(
        ttl_seconds=config.SCORE_CACHE_TTL_SECONDS,
        max_entries=config.SCORE_CACHE_MAX_ENTRIES,
        batch_size=config.SCORE_BATCH_SIZE,
        batch_pause_seconds=config.SCORE_BATCH_PAUSE_SECONDS,
        real_time_view_threshold=config.REAL_TIME_VIEW_THRESHOLD,
    ).with_ab_testing(config.AB_TESTING_ENABLED)
    return dataclasses.replace(
        base,
        votes=dataclasses.replace(base.votes, diversity_buckets=config.VOTER_DIVERSITY_BUCKETS),
        validation=dataclasses.replace(
            base.validation, recent_vote_window=config.RECENT_VOTE_WINDOW
        ),
    )


def build_engine(items: list[ContentItem]) -> RankingEngine:
    """Construct an engine backed by in-memory stores holding *items*."""
    cfg = build_config()
    sources = DataSources(
        content=InMemoryContentStore(items),
        votes=InMemoryVoteStore(window=cfg.validation.recent_vote_window),
    )
    return RankingEngine(config=cfg, sources=sources)


def _parse_votes(raw: dict[str, Any]) -> VoteAggregate:
    recent = [
        RecentVote(voter_id=v["voter_id"], timestamp=datetime.fromisoformat(v["timestamp"]))
        for v in raw.get("recent_votes", [])
    ]
    fields = {k: v for k, v in raw.items() if k != "recent_votes"}
    return VoteAggregate(recent_votes=recent, **fields)


def parse_item(raw: dict[str, Any]) -> ContentItem:
    """Build a :class:`ContentItem` from its JSON representation."""
    data = dict(raw)
    data["created_at"] = datetime.fromisoformat(data["created_at"])
    data["tags"] = frozenset(data.get("tags", ()))
    if data.get("votes") is not None:
        data["votes"] = _parse_votes(data["votes"])
    if data.get("engagement") is not None:
        data["engagement"] = EngagementStats(**data["engagement"])
    if data.get("creator") is not None:
        data["creator"] = CreatorReputation(**data["creator"])
    return ContentItem(**data)


def load_candidates(path: Path) -> list[ContentItem]:
    with path.open(encoding="utf-8") as fh:
        return [parse_item(raw) for raw in json.load(fh)]


def render(ranked: list[RankedItem]) -> list[dict[str, Any]]:
    return [
        {
            "rank": r.rank,
            "content_id": r.item.content_id,
            "composite_score": round(r.result.composite_score, 6),
            "normalized_score": round(r.result.normalized_score, 3),
            "percentile": round(r.percentile, 2),
            "ab_group": r.result.ab_group,
            "insights": [
                {"kind": i.kind.value, "category": i.category.value, "impact": i.impact.value}
                for i in r.result.insights
            ],
        }
        for r in ranked
    ]


def main(argv: list[str] | None = None) -> int:
    """Load candidates, rank them and print the feed.

    Startup sequence:
    1. Configure logging from ``LOG_LEVEL``.
    2. Parse the candidate file.
    3. Build the engine with environment overrides.
    4. Rank with the mode's preset window and print JSON.
    """
    argv = sys.argv[1:] if argv is None else argv
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not argv:
        logger.error("usage: main.py CANDIDATES_JSON [MODE]")
        return 2

    mode = argv[1] if len(argv) > 1 else config.DEFAULT_RANKING_MODE
    try:
        items = load_candidates(Path(argv[0]))
        engine = build_engine(items)
        logger.info("Ranking %d candidates in %s mode.", len(items), mode)
        ranked = RankingModes(engine).feed(mode, items, limit=config.DEFAULT_FEED_LIMIT)
    except (OSError, ValueError, KeyError, TypeError, RankingError):
        logger.exception("Failed to rank candidates from %s", argv[0])
        return 1

    print(json.dumps(render(ranked), indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
