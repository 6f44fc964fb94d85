"""Rendered-page strategy: load the profile in a headless browser and scrape it."""

from typing import List, Optional, Sequence

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_fixed

from postsnap.core.browser import BrowserIdentity, BrowserProvider, BrowserSession
from postsnap.core.exceptions import EmptyResultError, SourceUnavailableError, StrategyError
from postsnap.core.normalizer import build_result, normalize_candidates, profile_url_for
from postsnap.core.selectors import DEFAULT_PATTERNS, SelectorPattern, parse_document
from postsnap.models.data_models import PostSummary, RetrievalResult, SourceStrategy
from postsnap.utils.config import (
    MAX_ITEMS,
    NAVIGATION_ATTEMPTS,
    NAVIGATION_RETRY_WAIT,
    NAVIGATION_TIMEOUT,
    SELECTOR_TIMEOUT,
    SETTLE_DELAY,
)
from postsnap.utils.logging import get_logger

logger = get_logger(__name__)


def _is_transient_navigation_error(exc: BaseException) -> bool:
    # Timeouts already consumed the whole budget; only retry network hiccups
    return isinstance(exc, PlaywrightError) and not isinstance(exc, PlaywrightTimeoutError)


class PageScraper:
    """
    Scrapes the rendered profile grid.

    Each call opens its own browser session and always closes it before
    returning, whatever happens in between.
    """

    name = SourceStrategy.RENDERED_PAGE

    def __init__(
        self,
        browser: BrowserProvider,
        patterns: Optional[Sequence[SelectorPattern]] = None,
        identity: Optional[BrowserIdentity] = None,
        limit: int = MAX_ITEMS,
        navigation_timeout: float = NAVIGATION_TIMEOUT,
        selector_timeout: float = SELECTOR_TIMEOUT,
        settle_delay: float = SETTLE_DELAY,
        wait_until: str = "networkidle",
    ):
        """
        Initialize scraper.

        Args:
            browser: Headless browser capability
            patterns: Selector cascade, highest confidence first
            identity: User agent, viewport and locale for the session
            limit: Maximum number of posts to return
            navigation_timeout: Seconds allowed for loading the profile page
            selector_timeout: Seconds to wait for each pattern to match
            settle_delay: Seconds to let client-side rendering finish
            wait_until: Playwright load state to wait for
        """
        self.browser = browser
        self.patterns = list(DEFAULT_PATTERNS if patterns is None else patterns)
        self.identity = identity or BrowserIdentity()
        self.limit = limit
        self.navigation_timeout = navigation_timeout
        self.selector_timeout = selector_timeout
        self.settle_delay = settle_delay
        self.wait_until = wait_until

    async def fetch(self, username: str) -> RetrievalResult:
        """
        Fetch the most recent posts for a username from the rendered page.

        Raises:
            SourceUnavailableError: Browser could not be opened or page not loaded
            EmptyResultError: No selector pattern produced a post
        """
        url = profile_url_for(username)
        logger.info(f"Navigating to {url}")

        try:
            session = await self.browser.open(self.identity)
        except Exception as e:
            raise SourceUnavailableError(f"Could not open browser session: {str(e)}")

        try:
            try:
                await self._navigate(session, url)
                await session.wait(self.settle_delay)
            except Exception as e:
                raise SourceUnavailableError(f"Navigation failed: {str(e)}")

            posts = await self._run_cascade(session)
            result = build_result(posts, self.name, self.limit)
            if result is None:
                raise EmptyResultError(f"No posts found on page for @{username}")
            return result

        except StrategyError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error scraping page for @{username}")
            raise SourceUnavailableError(f"Unexpected error: {str(e)}")
        finally:
            await self._close(session)

    @retry(
        retry=retry_if_exception(_is_transient_navigation_error),
        stop=stop_after_attempt(NAVIGATION_ATTEMPTS),
        wait=wait_fixed(NAVIGATION_RETRY_WAIT),
        reraise=True,
    )
    async def _navigate(self, session: BrowserSession, url: str) -> None:
        await session.goto(url, wait_until=self.wait_until, timeout=self.navigation_timeout)

    async def _run_cascade(self, session: BrowserSession) -> List[PostSummary]:
        """Try each pattern in order; stop at the first one that yields posts."""
        for pattern in self.patterns:
            logger.debug(f"Trying selector: {pattern.css}")
            try:
                if not await session.wait_for_selector(pattern.css, timeout=self.selector_timeout):
                    logger.debug(f"Selector {pattern.css} did not match, trying next")
                    continue

                document = parse_document(await session.content())
                posts = normalize_candidates(pattern.extract(document, self.limit), self.limit)
            except Exception as e:
                logger.warning(f"Selector {pattern.css} failed ({e}), trying next")
                continue

            if posts:
                logger.info(f"{len(posts)} posts found using selector: {pattern.css}")
                return posts

        return []

    async def _close(self, session: BrowserSession) -> None:
        try:
            await session.close()
        except Exception as e:
            logger.warning(f"Failed to close browser session cleanly: {e}")
