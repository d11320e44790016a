"""Deployment settings driven by environment variables.

All settings have sensible defaults for local development.  They are read
once at import time and turned into a :class:`ranking.config.RankingConfig`
by :func:`main.build_config`.
"""

import os

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# ---------------------------------------------------------------------------
# Score cache
# ---------------------------------------------------------------------------

# Lifetime of a cached score.  Scores are also keyed by 5-minute time
# bucket, so raising this above 300 has no effect on freshness.
SCORE_CACHE_TTL_SECONDS: float = float(os.getenv("SCORE_CACHE_TTL_SECONDS", "300"))

# Maximum number of cached scores before eviction kicks in.
SCORE_CACHE_MAX_ENTRIES: int = int(os.getenv("SCORE_CACHE_MAX_ENTRIES", "100"))

# ---------------------------------------------------------------------------
# Batch scoring
# ---------------------------------------------------------------------------

SCORE_BATCH_SIZE: int = int(os.getenv("SCORE_BATCH_SIZE", "100"))

# Pause between batch groups.  0 still yields the thread.
SCORE_BATCH_PAUSE_SECONDS: float = float(os.getenv("SCORE_BATCH_PAUSE_SECONDS", "0"))

# Items with more views than this are eligible for realtime rescoring.
REAL_TIME_VIEW_THRESHOLD: int = int(os.getenv("REAL_TIME_VIEW_THRESHOLD", "10000"))

# ---------------------------------------------------------------------------
# Scoring knobs
# ---------------------------------------------------------------------------

# Number of voter cohorts used by the vote-diversity estimator.
VOTER_DIVERSITY_BUCKETS: int = int(os.getenv("VOTER_DIVERSITY_BUCKETS", "8"))

# Length of the recent-vote window kept per item by the vote store.
RECENT_VOTE_WINDOW: int = int(os.getenv("RECENT_VOTE_WINDOW", "256"))

AB_TESTING_ENABLED: bool = os.getenv("AB_TESTING_ENABLED", "true").lower() in ("1", "true", "yes")

# ---------------------------------------------------------------------------
# Feed defaults
# ---------------------------------------------------------------------------

DEFAULT_RANKING_MODE: str = os.getenv("DEFAULT_RANKING_MODE", "hot")
DEFAULT_FEED_LIMIT: int = int(os.getenv("DEFAULT_FEED_LIMIT", "50"))
