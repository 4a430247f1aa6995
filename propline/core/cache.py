"""
In-memory TTL cache shared by the resolver, forecast memoization and odds lookups.

Entries are stored as ``key -> (value, expires_at)``. Each data class has
its own default TTL (see Settings.CACHE_TTL_*):

- player_stats: 24 hours
- predictions: 24 hours (key includes the game log fingerprint)
- odds: 1 hour
- next_game: 6 hours
- image_metadata: 7 days
- players_with_lines: 30 minutes

Expired entries are evicted lazily on read; ``sweep()`` exists only to
reclaim memory. A cache failure is logged and reported as a miss so the
caller can always recompute.
"""
import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from propline.core.logging import get_logger

logger = get_logger(__name__)

# Data classes with a configured default TTL
PLAYER_STATS = "player_stats"
PREDICTIONS = "predictions"
ODDS = "odds"
NEXT_GAME = "next_game"
IMAGE_METADATA = "image_metadata"
PLAYERS_WITH_LINES = "players_with_lines"
INJURIES = "injuries"

DEFAULT_TTLS: Dict[str, int] = {
    PLAYER_STATS: 24 * 3600,
    PREDICTIONS: 24 * 3600,
    ODDS: 3600,
    NEXT_GAME: 6 * 3600,
    IMAGE_METADATA: 7 * 24 * 3600,
    PLAYERS_WITH_LINES: 30 * 60,
    INJURIES: 3600,
}

FALLBACK_TTL = 3600


def make_key(data_class: str, *parts: Any) -> str:
    """
    Build a namespaced cache key.

    Example:
        >>> make_key(PREDICTIONS, "points", "a1b2c3")
        'predictions:points:a1b2c3'
    """
    return ":".join([data_class, *(str(p) for p in parts)])


class TTLCache:
    """
    Thread-safe key/value cache with per-entry expiry.

    Args:
        ttls: Per-data-class default TTLs in seconds (defaults to DEFAULT_TTLS)
        clock: Monotonic time source in seconds; injectable for tests
    """

    def __init__(
        self,
        ttls: Optional[Dict[str, int]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttls = dict(DEFAULT_TTLS)
        if ttls:
            self._ttls.update(ttls)
        self._clock = clock
        self._store: Dict[Any, Tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @classmethod
    def from_settings(cls, settings, clock: Callable[[], float] = time.monotonic) -> "TTLCache":
        """Build a cache whose TTLs come from Settings.CACHE_TTL_* fields."""
        ttls = {name: settings.cache_ttl_for(name) for name in DEFAULT_TTLS}
        return cls(ttls={k: v for k, v in ttls.items() if v}, clock=clock)

    def ttl_for(self, data_class: str) -> int:
        return self._ttls.get(data_class, FALLBACK_TTL)

    def get(self, key: Any) -> Tuple[Any, bool]:
        """
        Read a key.

        Returns:
            (value, True) on a live hit, (None, False) on a miss, an expired
            entry, or any internal failure
        """
        try:
            with self._lock:
                entry = self._store.get(key)
                if entry is None:
                    self._misses += 1
                    return None, False

                value, expires_at = entry
                if self._clock() >= expires_at:
                    del self._store[key]
                    self._misses += 1
                    return None, False

                self._hits += 1
                return value, True
        except Exception as e:
            logger.warning(f"Cache read failed for {key!r}, treating as miss: {e}")
            return None, False

    def set(
        self,
        key: Any,
        value: Any,
        ttl: Optional[float] = None,
        data_class: Optional[str] = None,
    ) -> None:
        """
        Write a key, overwriting any previous value.

        Args:
            key: Cache key (usually from make_key)
            value: Value to store
            ttl: Explicit TTL in seconds; takes precedence over data_class
            data_class: Data class whose default TTL applies when ttl is None
        """
        if ttl is None:
            ttl = self.ttl_for(data_class) if data_class else FALLBACK_TTL

        try:
            with self._lock:
                self._store[key] = (value, self._clock() + ttl)
        except Exception as e:
            logger.warning(f"Cache write failed for {key!r}: {e}")

    def delete(self, key: Any) -> None:
        try:
            with self._lock:
                self._store.pop(key, None)
        except Exception as e:
            logger.warning(f"Cache delete failed for {key!r}: {e}")

    def sweep(self) -> int:
        """Drop all expired entries. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, expires_at) in self._store.items() if now >= expires_at]
            for k in expired:
                del self._store[k]
        if expired:
            logger.debug(f"Cache sweep removed {len(expired)} expired entries")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def stats(self) -> Dict[str, int]:
        """Entry count and hit/miss counters."""
        with self._lock:
            return {"entries": len(self._store), "hits": self._hits, "misses": self._misses}

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)
