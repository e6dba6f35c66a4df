"""
Messenger PIN challenge (end-to-end encryption restore code).
"""
import logging
from enum import Enum

from playwright.async_api import Error as PlaywrightError

from .browser import BrowserManager
from .config import Config

logger = logging.getLogger(__name__)

PIN_INPUT_SELECTORS = [
    "input[placeholder*='PIN' i]",
    "input[name*='pin' i]",
    "input[aria-label*='PIN' i]",
    "input[type='tel']",
    "input[inputmode='numeric']",
    "[role='dialog'] input[type='password']",
    "[role='alertdialog'] input",
]

PIN_SUBMIT_SELECTOR = (
    "[role='dialog'] button[type='submit'], "
    "[role='dialog'] button:has-text('OK'), "
    "[role='dialog'] button:has-text('Submit'), "
    "[role='dialog'] button:has-text('Continue'), "
    "[role='dialog'] button:has-text('Continuer'), "
    "[role='dialog'] button:has-text('Valider'), "
    "[role='dialog'] [role='button']:has-text('OK')"
)


class PinOutcome(Enum):
    RESOLVED = "resolved"
    UNRESOLVED = "unresolved"


class PinChallengeHandler:
    """Fills the Messenger PIN dialog when it shows up."""

    def __init__(self, config: Config, browser: BrowserManager):
        self.config = config
        self.browser = browser

    async def handle(self) -> PinOutcome:
        """
        Try every PIN input strategy once.

        UNRESOLVED is not an error: the dialog is often simply absent, and
        callers carry on either way.
        """
        page = self.browser.get_page()

        # Give the dialog a chance to render
        await page.wait_for_timeout(self.config.pin_dialog_wait_ms)

        if not self.config.pin:
            logger.warning("No PIN configured in FACEBOOK_PIN env variable")
            return PinOutcome.UNRESOLVED

        for selector in PIN_INPUT_SELECTORS:
            try:
                inputs = await page.locator(selector).all()
            except PlaywrightError as e:
                logger.debug(f"PIN selector '{selector}' failed: {e}")
                continue
            if not inputs:
                continue
            logger.debug(f"Found {len(inputs)} potential PIN inputs with selector: {selector}")

            for pin_input in inputs:
                try:
                    if not await pin_input.is_visible():
                        continue
                    await pin_input.fill(self.config.pin)
                except PlaywrightError as e:
                    logger.error(f"Failed to enter PIN: {e}")
                    continue

                await self.browser.human_delay()
                await self._submit(page, pin_input)

                # Messenger takes a while to decrypt the inbox
                for _ in range(3):
                    await self.browser.human_delay()

                logger.info(">>> PIN submission completed")
                return PinOutcome.RESOLVED

        logger.debug("No PIN input found")
        return PinOutcome.UNRESOLVED

    async def _submit(self, page, pin_input) -> None:
        try:
            submit = page.locator(PIN_SUBMIT_SELECTOR).first
            if await submit.count() > 0:
                await submit.click()
                logger.debug("Clicked PIN submit button")
            else:
                await pin_input.press("Enter")
                logger.debug("Pressed Enter to submit PIN")
        except PlaywrightError:
            # The submit usually triggers a navigation that detaches the dialog
            logger.debug("Submit action completed (page may have navigated)")
