"""
Authentication state machine: Unauthenticated -> Authenticated.
"""
import logging
import re
import sys

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from .browser import BrowserManager
from .config import Config
from .errors import ChallengeRequired, LoginFailed, LoginFormNotFound

logger = logging.getLogger(__name__)

FACEBOOK_URL = "https://www.facebook.com/"
LOGIN_URL = "https://www.facebook.com/login"
LOGOUT_URL = "https://www.facebook.com/logout.php"

LOGGED_IN_SELECTOR = "[role='navigation'], [role='feed']"
EMAIL_SELECTOR = "input#email, input[name='email']"
PASSWORD_SELECTOR = "input#pass, input[name='pass']"
SUBMIT_SELECTOR = "button[name='login'], button[type='submit']"

LEFT_LOGIN_RE = re.compile(r"facebook\.com/(?!login)")
CHALLENGE_MARKERS = ("checkpoint", "two_factor", "two_step_verification", "security")

CHALLENGE_MESSAGE = (
    "2FA or security check required. Re-run with --headed and complete "
    "the check in the browser window."
)


def is_challenge_url(url: str) -> bool:
    url = (url or "").lower()
    return any(marker in url for marker in CHALLENGE_MARKERS)


def looks_authenticated(url: str) -> bool:
    """True for facebook.com URLs that are not login or challenge pages."""
    url = (url or "").lower()
    return "facebook.com" in url and "login" not in url and not is_challenge_url(url)


class AuthManager:
    """Ensures the shared page is logged in before any scraping."""

    def __init__(self, config: Config, browser: BrowserManager):
        self.config = config
        self.browser = browser
        self._logged_in = False

    @property
    def is_authenticated(self) -> bool:
        return self._logged_in

    async def ensure_logged_in(self) -> None:
        if self._logged_in:
            return

        # Before any browser work: missing credentials are fatal
        self.config.validate_credentials()

        page = await self.browser.launch()
        await self.browser.goto(FACEBOOK_URL)
        await self.browser.human_delay()

        if await self._probe_logged_in(page):
            logger.info(">>> Session cookies valid, already logged in")
            self._logged_in = True
            return

        await self.login()

    async def _probe_logged_in(self, page) -> bool:
        """Landmark probe that does not need the page to finish loading."""
        if not looks_authenticated(page.url):
            return False
        try:
            await page.wait_for_selector(
                LOGGED_IN_SELECTOR, timeout=self.config.probe_timeout_ms, state="attached"
            )
        except PlaywrightError:
            return False
        try:
            return await page.locator(PASSWORD_SELECTOR).count() == 0
        except PlaywrightError:
            return True

    async def login(self) -> None:
        page = self.browser.get_page()
        logger.info(">>> Logging in...")

        await self.browser.goto(LOGIN_URL)
        await self.browser.human_delay()

        email_input = page.locator(EMAIL_SELECTOR).first
        if await email_input.count() == 0:
            if looks_authenticated(page.url):
                logger.info(">>> No login form and not on a login page, treating as logged in")
                await self._complete_login()
                return
            raise LoginFormNotFound(f"Login form not found at {page.url}")

        password_input = page.locator(PASSWORD_SELECTOR).first
        submit_button = page.locator(SUBMIT_SELECTOR).first
        if await password_input.count() == 0 or await submit_button.count() == 0:
            raise LoginFormNotFound(f"Incomplete login form at {page.url}")

        timeout = self.config.selector_timeout_ms
        try:
            await email_input.fill(self.config.email, timeout=timeout)
            await self.browser.human_delay()
            await password_input.fill(self.config.password, timeout=timeout)
            await self.browser.human_delay()
            await submit_button.click(timeout=timeout)
        except PlaywrightError as e:
            raise LoginFormNotFound(f"Could not submit the login form: {e}") from e

        try:
            await page.wait_for_url(LEFT_LOGIN_RE, timeout=self.config.login_timeout_ms)
            left_login = True
        except PlaywrightTimeout:
            left_login = False

        if is_challenge_url(page.url):
            await self._resolve_challenge(page)
        elif not left_login and not await self._probe_logged_in(page):
            raise LoginFailed("Login failed. Check your credentials.")

        await self.browser.human_delay()
        await self._complete_login()

    async def _resolve_challenge(self, page) -> None:
        """
        Let a human clear a checkpoint in headed mode; fail otherwise.
        """
        logger.warning(f">>> Security challenge at {page.url}")
        if self.config.headless or not sys.stdin.isatty():
            raise ChallengeRequired(CHALLENGE_MESSAGE)

        logger.info(">>> Complete the security check in the browser window, then press Enter.")
        try:
            input()
        except EOFError:
            pass

        if not await self._probe_logged_in(page):
            raise ChallengeRequired(CHALLENGE_MESSAGE)

    async def _complete_login(self) -> None:
        await self.browser.save_cookies()
        self._logged_in = True
        logger.info(">>> Login successful")

    async def logout(self) -> None:
        """Best-effort logout; the state is cleared either way."""
        if self.browser.is_running:
            await self.browser.goto(LOGOUT_URL)
            await self.browser.human_delay()
        self._logged_in = False
        logger.info(">>> Logged out")
