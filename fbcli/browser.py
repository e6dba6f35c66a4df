"""
Browser lifecycle: one Chromium instance, one page, persisted cookies.
"""
import logging
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from .config import Config
from .errors import NotInitialized
from .session_store import SessionStore
from .utils import random_delay, scroll_amount

logger = logging.getLogger(__name__)


class BrowserManager:
    """
    Owns the single browser/page pair used by every scraper.

    Calls must be serialized: there is one page and no concurrent
    navigation. ``close()`` always persists cookies before teardown.
    """

    def __init__(self, config: Config, session_store: Optional[SessionStore] = None):
        self.config = config
        self.session_store = session_store or SessionStore(config.session_path)
        self._playwright = None
        self._browser = None
        self._context = None
        self._page = None

    def set_headless(self, headless: bool) -> None:
        """Takes effect on the next launch(); a running browser is left alone."""
        self.config.headless = headless

    @property
    def is_running(self) -> bool:
        return self._page is not None

    async def launch(self):
        """Return the active page, launching the browser on first use."""
        if self._page is not None:
            return self._page

        self._context = await self._start_browser()
        self._page = await self._context.new_page()
        logger.info(f">>> Browser ready (headless={self.config.headless})")

        await self.load_cookies()
        return self._page

    async def _start_browser(self):
        """Start Playwright and Chromium, return a fresh browser context."""
        launch_args = ["--disable-blink-features=AutomationControlled"]
        if self.config.headless:
            launch_args += ["--disable-dev-shm-usage", "--no-sandbox", "--disable-gpu"]

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(
            headless=self.config.headless,
            slow_mo=self.config.slow_mo,
            args=launch_args,
        )
        context = await self._browser.new_context(
            viewport=self.config.viewport,
            user_agent=self.config.user_agent,
            locale=self.config.locale,
        )
        context.set_default_timeout(self.config.timeout_ms)
        context.set_default_navigation_timeout(self.config.timeout_ms)
        return context

    def get_page(self):
        if self._page is None:
            raise NotInitialized("Browser not initialized. Call launch() first.")
        return self._page

    async def load_cookies(self) -> int:
        """Load persisted cookies into the context. Returns how many were added."""
        if self._context is None:
            return 0
        cookies = self.session_store.load()
        if not cookies:
            return 0
        try:
            await self._context.add_cookies(cookies)
        except PlaywrightError as e:
            logger.error(f"Failed to load cookies: {e}")
            return 0
        logger.info(f">>> Restored {len(cookies)} cookies from {self.session_store.path}")
        return len(cookies)

    async def save_cookies(self) -> None:
        """Persist the context cookies. Failures are logged, never raised."""
        if self._page is None:
            return
        try:
            cookies = await self._page.context.cookies()
            self.session_store.save(cookies)
        except (PlaywrightError, OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save cookies: {e}")

    async def close(self) -> None:
        """Save cookies, then tear everything down so launch() starts fresh."""
        if self._page is not None:
            await self.save_cookies()

        # Each step runs even if an earlier one failed
        steps = (
            ("context", self._context, "close"),
            ("browser", self._browser, "close"),
            ("playwright", self._playwright, "stop"),
        )
        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None

        for name, target, method in steps:
            if target is None:
                continue
            try:
                await getattr(target, method)()
            except Exception as e:
                logger.warning(f"Failed to close {name} cleanly: {e}")

    async def goto(self, url: str, timeout_ms: Optional[int] = None,
                   wait_until: str = "domcontentloaded") -> bool:
        """
        Navigate the page, tolerating slow or partial loads.

        Returns False on timeout or navigation error; the caller carries on
        with whatever the page managed to render.
        """
        page = self.get_page()
        try:
            await page.goto(url, wait_until=wait_until, timeout=timeout_ms or self.config.timeout_ms)
            return True
        except PlaywrightError as e:
            logger.warning(f"Navigation to {url} did not complete, continuing anyway: {e}")
            return False

    async def human_delay(self, fixed_ms: Optional[int] = None) -> None:
        await random_delay(self.config.delay_min_ms, self.config.delay_max_ms, fixed_ms)

    async def human_scroll(self) -> None:
        """Scroll down by a random amount, then pause."""
        if self._page is None:
            return
        amount = scroll_amount()
        try:
            await self._page.evaluate("(amount) => window.scrollBy(0, amount)", amount)
        except PlaywrightError as e:
            logger.debug(f"Scroll failed: {e}")
        await self.human_delay()
