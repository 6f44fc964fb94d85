"""In-memory result cache with expiry."""

import asyncio
import threading
import time
from typing import Callable, Dict, List, Optional

from postsnap.models.data_models import CacheEntry, RetrievalResult
from postsnap.utils.config import CACHE_TTL, MAX_ITEMS
from postsnap.utils.logging import get_logger

logger = get_logger(__name__)


def make_fingerprint(username: str, limit: Optional[int] = None) -> str:
    """
    Derive the cache key for a request.

    Usernames are case-insensitive on Instagram, so the key uses the
    lower-cased handle. The item count only becomes part of the key when it
    differs from the default.
    """
    key = f"instagram:{username.strip().lower()}"
    if limit is not None and limit != MAX_ITEMS:
        key = f"{key}:{limit}"
    return key


class CacheStore:
    """
    Process-lifetime store mapping fingerprints to timestamped results.

    Entries are immutable and replaced as a whole, so a reader never sees a
    half-written value. A background task sweeps expired entries every
    ``ttl`` seconds; reads also apply the freshness check so a stale entry
    is never served before the sweep gets to it.
    """

    def __init__(self, ttl: float = CACHE_TTL, clock: Callable[[], float] = time.monotonic):
        """
        Initialize cache store.

        Args:
            ttl: Seconds an entry stays fresh
            clock: Monotonic time source (injectable for tests)
        """
        self.ttl = ttl
        self.clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, fingerprint: str) -> bool:
        return fingerprint in self._entries

    def get(self, fingerprint: str) -> Optional[CacheEntry]:
        """Return the stored entry, fresh or not."""
        return self._entries.get(fingerprint)

    def lookup(self, fingerprint: str) -> Optional[CacheEntry]:
        """Return the entry only if it is still fresh."""
        entry = self._entries.get(fingerprint)
        if entry is None:
            return None
        if not entry.is_fresh(self.clock(), self.ttl):
            logger.debug(f"Stale cache entry ignored: {fingerprint}")
            return None
        return entry

    def put(self, fingerprint: str, result: RetrievalResult) -> CacheEntry:
        """Store a result, replacing any previous entry for the key."""
        entry = CacheEntry(result=result, stored_at=self.clock())
        with self._lock:
            self._entries[fingerprint] = entry
        return entry

    def invalidate(self, fingerprint: str) -> bool:
        with self._lock:
            return self._entries.pop(fingerprint, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep(self, now: Optional[float] = None, ttl: Optional[float] = None) -> List[str]:
        """
        Remove every entry older than ``ttl``.

        Args:
            now: Clock reading to judge against (default: current clock)
            ttl: Maximum age (default: store TTL)

        Returns:
            Keys that were removed
        """
        now = self.clock() if now is None else now
        ttl = self.ttl if ttl is None else ttl

        removed = []
        for fingerprint, entry in list(self._entries.items()):
            if entry.age(now) <= ttl:
                continue
            with self._lock:
                # A concurrent put may have refreshed the key meanwhile
                if self._entries.get(fingerprint) is entry:
                    del self._entries[fingerprint]
                    removed.append(fingerprint)
                    logger.info(f"Cache cleared for: {fingerprint}")
        return removed

    async def _sweep_forever(self) -> None:
        while True:
            await asyncio.sleep(self.ttl)
            try:
                self.sweep()
            except Exception:
                logger.exception("Cache sweep failed")

    def start(self) -> None:
        """Schedule the periodic sweep on the running event loop."""
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.get_running_loop().create_task(self._sweep_forever())
            logger.debug(f"Cache sweeper started (every {self.ttl:.0f}s)")

    async def close(self) -> None:
        """Stop the sweeper and drop all entries."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        self.clear()
        logger.debug("Cache store closed")

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
