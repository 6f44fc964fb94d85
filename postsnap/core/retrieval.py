"""Retrieval orchestration: cache lookup, strategy cascade, fallback."""

import asyncio
import re
from contextlib import AsyncExitStack
from typing import Dict, List, Optional

from postsnap.core.browser import BrowserProvider, PlaywrightBrowserProvider
from postsnap.core.exceptions import InvalidUsernameError, StrategyError
from postsnap.core.scrapers.api_scraper import ApiScraper
from postsnap.core.scrapers.fallback_scraper import FallbackScraper
from postsnap.core.scrapers.page_scraper import PageScraper
from postsnap.models.data_models import RetrievalResult, RetrievalStats
from postsnap.storage.cache import CacheStore, make_fingerprint
from postsnap.utils.config import COALESCE_REQUESTS, MAX_ITEMS
from postsnap.utils.logging import get_logger

logger = get_logger(__name__)

USERNAME_RE = re.compile(r"^[A-Za-z0-9._]{1,30}$")
NO_POSTS_FOUND = "No posts found"


def validate_username(username: str) -> str:
    """
    Return the trimmed username, or raise if it cannot be an Instagram handle.

    Raises:
        InvalidUsernameError: Empty, too long or containing forbidden characters
    """
    cleaned = (username or "").strip().lstrip("@")
    if not USERNAME_RE.match(cleaned):
        raise InvalidUsernameError(f"Invalid Instagram username: {username!r}")
    return cleaned


class RetrievalService:
    """
    Serves recent posts for a username.

    Per request: fresh cache hit -> done. Otherwise the structured API is
    tried, then the rendered page, then the fallback; the first strategy
    that yields at least one post wins and its result is cached. Strategy
    failures never reach the caller.
    """

    def __init__(
        self,
        cache: Optional[CacheStore] = None,
        api: Optional[ApiScraper] = None,
        page: Optional[PageScraper] = None,
        fallback: Optional[FallbackScraper] = None,
        browser: Optional[BrowserProvider] = None,
        limit: int = MAX_ITEMS,
        coalesce: bool = COALESCE_REQUESTS,
    ):
        """
        Initialize service.

        Args:
            cache: Result cache (default: new CacheStore)
            api: Structured API strategy
            page: Rendered-page strategy
            fallback: Placeholder strategy
            browser: Browser capability for the default page strategy
            limit: Maximum number of posts per result
            coalesce: Share one in-flight retrieval between concurrent
                requests for the same username
        """
        if page is None:
            browser = browser or PlaywrightBrowserProvider()
            page = PageScraper(browser, limit=limit)

        self.cache = cache or CacheStore()
        self.api = api or ApiScraper(limit=limit)
        self.page = page
        self.fallback = fallback or FallbackScraper()
        self.browser = browser
        self.limit = limit
        self.coalesce = coalesce
        self.stats = RetrievalStats()
        self._inflight: Dict[str, asyncio.Task] = {}
        self._exit_stack: Optional[AsyncExitStack] = None

    @property
    def strategies(self) -> List:
        """Strategies in cascade order, fallback excluded."""
        return [self.api, self.page]

    async def start(self) -> None:
        """Open long-lived resources and start the cache sweeper."""
        if self._exit_stack is not None:
            return
        if self.browser is not None and hasattr(self.browser, "start"):
            await self.browser.start()
        stack = AsyncExitStack()
        if hasattr(self.api, "__aenter__"):
            await stack.enter_async_context(self.api)
        self.cache.start()
        self._exit_stack = stack
        logger.info("Retrieval service started")

    async def close(self) -> None:
        """Release resources opened by ``start``."""
        for task in list(self._inflight.values()):
            task.cancel()
        self._inflight.clear()
        if self._exit_stack is not None:
            await self._exit_stack.aclose()
            self._exit_stack = None
        await self.cache.close()
        if self.browser is not None and hasattr(self.browser, "stop"):
            await self.browser.stop()
        logger.info("Retrieval service closed")

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def get_recent_posts(self, username: str) -> RetrievalResult:
        """
        Return the recent posts for ``username``.

        Raises:
            InvalidUsernameError: If the username is not a valid handle
        """
        username = validate_username(username)
        fingerprint = make_fingerprint(username)

        entry = self.cache.lookup(fingerprint)
        if entry is not None:
            self.stats.cache_hits += 1
            logger.info(f"Cache hit for @{username}")
            return entry.result
        self.stats.cache_misses += 1

        if not self.coalesce:
            return await self._retrieve(username, fingerprint)

        task = self._inflight.get(fingerprint)
        if task is None:
            task = asyncio.ensure_future(self._retrieve(username, fingerprint))
            self._inflight[fingerprint] = task
            task.add_done_callback(lambda _: self._inflight.pop(fingerprint, None))
        else:
            logger.debug(f"Joining in-flight retrieval for @{username}")
        return await asyncio.shield(task)

    async def _retrieve(self, username: str, fingerprint: str) -> RetrievalResult:
        logger.info(f"Fetching Instagram posts for @{username}...")

        reason = NO_POSTS_FOUND
        try:
            result = await self._run_cascade(username)
        except Exception as e:
            logger.exception(f"Retrieval pipeline failed for @{username}")
            result = None
            reason = f"Unexpected error: {str(e)}"

        if result is None:
            logger.warning(f"No posts found for @{username}, using embed fallback")
            result = await self.fallback.fetch(username, reason=reason)

        self.cache.put(fingerprint, result)
        self.stats.record_source(result.source)
        logger.info(f"Posts for @{username} served by {result.source.value}")
        return result

    async def _run_cascade(self, username: str) -> Optional[RetrievalResult]:
        for strategy in self.strategies:
            label = strategy.name.value
            try:
                result = await strategy.fetch(username)
            except StrategyError as e:
                self.stats.contained_failures += 1
                logger.warning(f"{label} failed for @{username} ({e.kind.value}): {e}")
                continue
            except Exception as e:
                self.stats.contained_failures += 1
                logger.exception(f"{label} raised unexpectedly for @{username}: {e}")
                continue

            if result is not None and result.items:
                return result
            logger.info(f"{label} returned no posts for @{username}")

        return None

    def get_stats(self) -> dict:
        """
        Get service statistics.

        Returns:
            Dictionary with stats
        """
        return {
            "cache_entries": len(self.cache),
            "cache_hits": self.stats.cache_hits,
            "cache_misses": self.stats.cache_misses,
            "served_by": dict(self.stats.served_by),
            "contained_failures": self.stats.contained_failures,
        }
