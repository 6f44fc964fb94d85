"""Headless browser capability used by the page scraper.

The page scraper only needs a handful of operations; they are described by
``BrowserProvider`` / ``BrowserSession`` so tests can swap in fakes. The
production implementation drives Chromium through Playwright.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from postsnap.utils.config import (
    BROWSER_LOCALE,
    BROWSER_USER_AGENT,
    CHROMIUM_ARGS,
    NAVIGATION_TIMEOUT,
    VIEWPORT,
)
from postsnap.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class BrowserIdentity:
    """How the browser presents itself to the target site."""
    user_agent: str = BROWSER_USER_AGENT
    viewport: Dict[str, int] = field(default_factory=lambda: dict(VIEWPORT))
    locale: str = BROWSER_LOCALE


class BrowserSession(Protocol):
    """One isolated page. Timeouts are in seconds."""

    async def goto(self, url: str, wait_until: str, timeout: float) -> None: ...

    async def wait(self, seconds: float) -> None: ...

    async def wait_for_selector(self, css: str, timeout: float) -> bool: ...

    async def content(self) -> str: ...

    async def close(self) -> None: ...


class BrowserProvider(Protocol):
    async def open(self, identity: BrowserIdentity) -> BrowserSession: ...


class PlaywrightSession:
    """A Chromium browser, context and page owned by a single request."""

    def __init__(self, browser: Browser, context: BrowserContext, page: Page):
        self.browser = browser
        self.context = context
        self.page = page

    async def goto(self, url: str, wait_until: str, timeout: float) -> None:
        await self.page.goto(url, wait_until=wait_until, timeout=timeout * 1000)

    async def wait(self, seconds: float) -> None:
        await self.page.wait_for_timeout(seconds * 1000)

    async def wait_for_selector(self, css: str, timeout: float) -> bool:
        """Return True once ``css`` matches, False on timeout."""
        try:
            await self.page.wait_for_selector(css, timeout=timeout * 1000, state="attached")
            return True
        except PlaywrightTimeoutError:
            return False

    async def content(self) -> str:
        return await self.page.content()

    async def close(self) -> None:
        try:
            await self.context.close()
        except Exception as e:
            logger.warning(f"Failed to close browser context cleanly: {e}")
        await self.browser.close()


class PlaywrightBrowserProvider:
    """
    Launches a fresh headless Chromium per session.

    The Playwright driver is started once (``start``) and shared; browsers
    are not, so concurrent requests never share cookies or pages.
    """

    def __init__(
        self,
        headless: bool = True,
        args: Optional[List[str]] = None,
        default_timeout: float = NAVIGATION_TIMEOUT,
    ):
        self.headless = headless
        self.args = list(CHROMIUM_ARGS if args is None else args)
        self.default_timeout = default_timeout
        self._playwright: Optional[Playwright] = None
        self._start_lock = asyncio.Lock()

    async def start(self) -> None:
        if self._playwright is not None:
            return
        async with self._start_lock:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
                logger.info("Playwright driver started")

    async def stop(self) -> None:
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
            logger.info("Playwright driver stopped")

    async def open(self, identity: BrowserIdentity) -> PlaywrightSession:
        await self.start()
        browser = await self._playwright.chromium.launch(headless=self.headless, args=self.args)
        try:
            context = await browser.new_context(
                user_agent=identity.user_agent,
                viewport=identity.viewport,
                locale=identity.locale,
            )
            context.set_default_timeout(self.default_timeout * 1000)
            page = await context.new_page()
        except BaseException:
            await browser.close()
            raise
        return PlaywrightSession(browser, context, page)
