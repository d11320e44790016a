"""Bounded TTL cache that coalesces concurrent builds of the same key."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Hashable
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class CacheOutcome(str, Enum):
    """How a :meth:`ScoreCache.get_or_compute` call was satisfied."""

    HIT = "hit"            # served from a Ready entry
    COALESCED = "coalesced"  # waited on another caller's build
    MISS = "miss"          # this caller built the value


@dataclass
class _Ready:
    value: Any
    expires_at: float


class ScoreCache:
    """Thread-safe memo of computed values keyed by fingerprint.

    Each key moves through ``Absent -> Building -> Ready -> Absent``.  While
    a key is Building, later callers wait on the builder's
    :class:`~concurrent.futures.Future` instead of computing again, so at
    most one build per key is ever in flight.  A failed build returns the key
    to Absent and re-raises the error in every waiter.

    The lock is only held for map bookkeeping, never while computing.

    Args:
        time_source: Callable returning the current time in seconds.
        ttl_seconds: Lifetime of a Ready entry.
        max_entries: Capacity; inserting beyond it evicts expired entries
            first, then the entries closest to expiry.
    """

    def __init__(
        self,
        time_source: Callable[[], float],
        ttl_seconds: float = 300.0,
        max_entries: int = 100,
    ) -> None:
        self._time = time_source
        self._ttl = ttl_seconds
        self._max_entries = max(1, max_entries)
        self._lock = threading.Lock()
        self._ready: dict[Hashable, _Ready] = {}
        self._building: dict[Hashable, Future] = {}
        self._generation = 0

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def get_or_compute(
        self,
        key: Hashable,
        compute: Callable[[], Any],
        force: bool = False,
    ) -> tuple[Any, CacheOutcome]:
        """Return the value for *key*, building it with *compute* if needed.

        Args:
            key: The fingerprint.
            compute: Zero-argument callable producing the value.
            force: Skip the Ready lookup and rebuild.  A build already in
                flight for *key* is still joined rather than duplicated.

        Returns:
            ``(value, outcome)``.
        """
        with self._lock:
            now = self._time()
            if not force:
                entry = self._ready.get(key)
                if entry is not None:
                    if entry.expires_at > now:
                        return entry.value, CacheOutcome.HIT
                    del self._ready[key]
            pending = self._building.get(key)
            if pending is None:
                future: Future = Future()
                self._building[key] = future
                generation = self._generation

        if pending is not None:
            return pending.result(), CacheOutcome.COALESCED

        try:
            value = compute()
        except BaseException as exc:
            with self._lock:
                if self._building.get(key) is future:
                    del self._building[key]
                future.set_exception(exc)
            raise

        with self._lock:
            if self._building.get(key) is future:
                del self._building[key]
            if generation == self._generation:
                self._ready[key] = _Ready(value, self._time() + self._ttl)
                self._evict_locked()
            else:
                logger.debug("Discarding build for %r started before cache clear.", key)
            future.set_result(value)
        return value, CacheOutcome.MISS

    def peek(self, key: Hashable) -> Any | None:
        """Return the unexpired value for *key* without building; ``None`` if absent."""
        with self._lock:
            entry = self._ready.get(key)
            if entry is None or entry.expires_at <= self._time():
                return None
            return entry.value

    def clear(self) -> None:
        """Drop every Ready entry.

        Builds already in flight still complete for their waiters but are not
        inserted, since they may have been computed from stale inputs.
        """
        with self._lock:
            self._ready.clear()
            self._generation += 1

    def __len__(self) -> int:
        with self._lock:
            return len(self._ready)

    @property
    def in_flight(self) -> int:
        with self._lock:
            return len(self._building)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _evict_locked(self) -> None:
        """Bring the map back under capacity. Caller holds ``self._lock``."""
        if len(self._ready) <= self._max_entries:
            return
        now = self._time()
        expired = [k for k, e in self._ready.items() if e.expires_at <= now]
        for k in expired:
            del self._ready[k]
        overflow = len(self._ready) - self._max_entries
        if overflow <= 0:
            return
        oldest = sorted(self._ready.items(), key=lambda kv: kv[1].expires_at)[:overflow]
        for k, _ in oldest:
            del self._ready[k]
        logger.debug("Evicted %d expired and %d live cache entries.", len(expired), overflow)
