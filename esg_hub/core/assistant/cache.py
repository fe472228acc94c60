import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from esg_hub.core.config import settings


# -----------------------------------------------------------------------------
# CACHE MODULE
# Purpose: keep expensive aggregate reads (dashboard, company snapshot) for a
# few minutes inside one process.
# Not shared between workers and never invalidated by writes: a cached read
# can be stale for up to the TTL.
# -----------------------------------------------------------------------------

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    data: Any
    expires_at: float


class TTLCache:
    """Process-local key/value map where every entry expires after a TTL."""

    def __init__(
        self,
        default_ttl: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def get(self, key: str) -> Optional[Any]:
        """
        Return the cached value, or None when missing or expired.
        Expired entries are evicted on read.
        """
        entry = self._entries.get(key)
        if entry is None:
            return None

        if self._clock() > entry.expires_at:
            del self._entries[key]
            return None

        return entry.data

    def set(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(data=data, expires_at=self._clock() + ttl)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def sweep(self) -> int:
        """
        Remove every expired entry.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


async def run_sweeper(cache: TTLCache, interval: float) -> None:
    """Sweep the cache forever; the app lifespan cancels this task on shutdown."""
    while True:
        await asyncio.sleep(interval)
        removed = cache.sweep()
        if removed:
            logger.debug(f"Cache sweep removed {removed} expired entries")


# Shared by all requests served by this process
cache = TTLCache(default_ttl=settings.CACHE_TTL_SECONDS)
