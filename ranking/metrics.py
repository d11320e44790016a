"""Performance counters for the scoring path."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time copy of the engine's counters."""

    computations: int
    cache_hits: int
    cache_misses: int
    average_computation_ms: float
    last_update: datetime | None
    cache_size: int = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.cache_hits + self.cache_misses
        return self.cache_hits / lookups if lookups else 0.0


class PerformanceMetrics:
    """Thread-safe counters; read them through :meth:`snapshot`."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._computations = 0
        self._hits = 0
        self._misses = 0
        self._average_ms = 0.0
        self._last_update: datetime | None = None

    def record_hit(self) -> None:
        with self._lock:
            self._hits += 1

    def record_miss(self) -> None:
        with self._lock:
            self._misses += 1

    def record_computation(self, elapsed_ms: float, at: datetime) -> None:
        """Fold one computation's wall time into the running average."""
        with self._lock:
            self._computations += 1
            self._average_ms += (elapsed_ms - self._average_ms) / self._computations
            self._last_update = at

    def snapshot(self, cache_size: int = 0) -> MetricsSnapshot:
        with self._lock:
            return MetricsSnapshot(
                computations=self._computations,
                cache_hits=self._hits,
                cache_misses=self._misses,
                average_computation_ms=self._average_ms,
                last_update=self._last_update,
                cache_size=cache_size,
            )

