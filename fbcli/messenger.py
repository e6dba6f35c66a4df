"""
Messenger: conversation list, transcripts and sending.
"""
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from playwright.async_api import Error as PlaywrightError

from .auth import AuthManager
from .browser import BrowserManager
from .challenge import PinChallengeHandler, PinOutcome
from .config import Config
from .errors import ExtractionFailure
from .models import Conversation, LastMessage, Message, MessageOptions, Participant
from .strategies import Strategy, first_populated

logger = logging.getLogger(__name__)

MESSAGES_URL = "https://www.facebook.com/messages/"
MARKETPLACE_INBOX_URL = MESSAGES_URL + "?filter=marketplace"
CONVERSATION_URL = "https://www.facebook.com/messages/t/{id}"

SELECTED_MARKETPLACE_SELECTOR = (
    "[role='tab'][aria-selected='true']:has-text('Marketplace'), "
    "[aria-pressed='true']:has-text('Marketplace'), "
    "[aria-current='page']:has-text('Marketplace')"
)
MARKETPLACE_BUTTON_SELECTORS = [
    "button:has-text('Marketplace')",
    "[role='button']:has-text('Marketplace')",
    "button[aria-label*='Marketplace']",
    "button:has(span:has-text('Marketplace'))",
]
CONVERSATION_LINK_SELECTORS = [
    "a[href*='/messages/t/'][role='link']",
    "[role='grid'] a[href*='/messages/t/']",
    "a[href*='/messages/t/']",
]

MESSAGES_READY_SELECTOR = "[role='main'], [data-testid='message_container']"
BUBBLE_SELECTORS = [
    "[data-testid='message_container']",
    "[role='main'] div[dir='auto']",
    "[data-testid='message_text']",
    "[data-testid='message_content']",
    "[data-pagelet='MessengerContent'] div[dir='auto']",
]
HISTORY_SCROLL_CYCLES = 3

COMPOSER_READY_SELECTOR = "[contenteditable='true'], textarea, [role='textbox']"
COMPOSER_SELECTORS = [
    "[contenteditable='true']",
    "textarea[placeholder*='Message']",
    "[role='textbox']",
]

ROW_SEPARATOR = "·"
CONVERSATION_ID_RE = re.compile(r"/messages/t/(\d+)")
MIN_MESSAGE_LENGTH = 2

SCROLL_TO_TOP_JS = """
() => {
  const container = document.querySelector('[role="main"]') || document.body;
  container.scrollTop = 0;
}
"""

BUBBLE_SNAPSHOT_JS = """
({ selectors, limit }) => {
  let elements = [];
  for (const selector of selectors) {
    elements = Array.from(document.querySelectorAll(selector));
    if (elements.length > 0) break;
  }
  return elements.slice(-limit).map((el) => {
    const cell = el.closest('div[role="gridcell"]');
    return {
      text: (el.textContent || '').trim(),
      sentMarker: el.closest('[data-testid*="sent"]') !== null,
      inlineBackground: (el.getAttribute('style') || '').includes('background-color'),
      rightAligned: cell !== null && (cell.getAttribute('style') || '').includes('flex-end'),
    };
  });
}
"""


@dataclass
class BubbleSnapshot:
    """Text and layout signals of one message bubble."""
    text: str = ""
    sent_marker: bool = False
    inline_background: bool = False
    right_aligned: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BubbleSnapshot":
        if not isinstance(data, dict):
            raise ExtractionFailure(f"Unexpected bubble snapshot: {data!r}")
        return cls(
            text=data.get("text") or "",
            sent_marker=bool(data.get("sentMarker")),
            inline_background=bool(data.get("inlineBackground")),
            right_aligned=bool(data.get("rightAligned")),
        )


def parse_conversation_row(href: Optional[str], text: Optional[str]) -> Optional[Conversation]:
    """
    Row text reads "Name · Listing title Message · Time".

    Returns None when the link is not a conversation thread.
    """
    m = CONVERSATION_ID_RE.search(href or "")
    if not m:
        return None

    parts = [part.strip() for part in (text or "").split(ROW_SEPARATOR)]
    name = "Unknown"
    preview = ""
    if len(parts) >= 2:
        name = parts[0] or "Unknown"
        preview = " · ".join(parts[1:-1])

    # Listing title glued to the name
    name_parts = name.split(ROW_SEPARATOR)
    if len(name_parts) > 1 and name_parts[0]:
        name = name_parts[0].strip()

    return Conversation(
        id=m.group(1),
        participants=[Participant(id="", name=name)],
        last_message=LastMessage(text=preview) if preview else None,
        unread_count=0,
    )


def is_sent_bubble(bubble: BubbleSnapshot) -> bool:
    """Any one layout signal marks the bubble as ours."""
    return bubble.sent_marker or bubble.inline_background or bubble.right_aligned


def parse_bubbles(conversation_id: str, bubbles: Sequence[BubbleSnapshot]) -> List[Message]:
    """Messages keep the index of their bubble, so skipped bubbles leave gaps."""
    messages = []
    for index, bubble in enumerate(bubbles):
        text = bubble.text.strip()
        if len(text) < MIN_MESSAGE_LENGTH:
            continue
        sent = is_sent_bubble(bubble)
        messages.append(Message(
            id=f"msg_{index}",
            conversation_id=conversation_id,
            sender_id="me" if sent else "them",
            sender_name="Me" if sent else "Other",
            text=text,
        ))
    return messages


class MessengerClient:
    """Reads and writes Messenger threads through the shared browser page."""

    def __init__(self, config: Config, browser: BrowserManager, auth: AuthManager,
                 pin_handler: PinChallengeHandler):
        self.config = config
        self.browser = browser
        self.auth = auth
        self.pin_handler = pin_handler

    async def _open(self, url: str):
        await self.auth.ensure_logged_in()
        page = self.browser.get_page()
        await self.browser.goto(url)
        await self.browser.human_delay()
        if await self.pin_handler.handle() is PinOutcome.UNRESOLVED:
            logger.debug("No PIN entered, messages may not load")
        return page

    async def list_conversations(self, options: Optional[MessageOptions] = None) -> List[Conversation]:
        options = options or MessageOptions()
        logger.info(">>> Fetching conversations...")
        page = await self._open(MESSAGES_URL)

        # Sidebar is slow to render
        for _ in range(3):
            await self.browser.human_delay()

        await self._filter_marketplace(page)
        await self.browser.human_delay()

        selector, links = await first_populated(page, CONVERSATION_LINK_SELECTORS)
        if selector is None:
            logger.warning("No conversation links found")
            return []
        logger.debug(f"Found {len(links)} conversation links with selector: {selector}")

        conversations: List[Conversation] = []
        for link in links[:options.limit]:
            try:
                href = await link.get_attribute("href")
                text = await link.text_content()
                conversation = parse_conversation_row(href, text)
            except Exception as e:
                logger.error(f"Failed to extract conversation: {e}")
                continue
            if conversation is not None:
                conversations.append(conversation)

        logger.info(f">>> Retrieved {len(conversations)} conversations")
        return conversations

    async def _filter_marketplace(self, page) -> bool:
        """Scope the inbox to Marketplace threads; carry on unfiltered if nothing works."""
        strategies = (
            Strategy("url_filter", self._filter_by_url),
            Strategy("filter_button", self._filter_by_button),
        )
        for strategy in strategies:
            try:
                if await strategy(page):
                    logger.debug(f"Marketplace filter applied via '{strategy.name}'")
                    return True
            except PlaywrightError as e:
                logger.debug(f"Marketplace filter '{strategy.name}' failed: {e}")
        logger.warning("Could not select the Marketplace inbox, continuing anyway...")
        return False

    async def _filter_by_url(self, page) -> bool:
        await self.browser.goto(MARKETPLACE_INBOX_URL)
        await self.browser.human_delay()
        return await page.locator(SELECTED_MARKETPLACE_SELECTOR).count() > 0

    async def _filter_by_button(self, page) -> bool:
        for selector in MARKETPLACE_BUTTON_SELECTORS:
            for button in await page.locator(selector).all():
                text = await button.text_content() or ""
                if "marketplace" not in text.lower():
                    continue
                await button.click()
                for _ in range(3):
                    await self.browser.human_delay()
                return True
        return False

    async def read_conversation(self, conversation_id: str,
                                options: Optional[MessageOptions] = None) -> List[Message]:
        options = options or MessageOptions(limit=50)
        logger.info(f">>> Reading conversation: {conversation_id}")
        page = await self._open(CONVERSATION_URL.format(id=conversation_id))

        try:
            await page.wait_for_selector(MESSAGES_READY_SELECTOR, timeout=self.config.selector_timeout_ms)
        except PlaywrightError:
            logger.error("Could not load messages")
            return []

        # Older messages load on scroll-up
        for _ in range(HISTORY_SCROLL_CYCLES):
            try:
                await page.evaluate(SCROLL_TO_TOP_JS)
            except PlaywrightError as e:
                logger.debug(f"Scroll to top failed: {e}")
            await self.browser.human_delay()

        try:
            raw = await page.evaluate(BUBBLE_SNAPSHOT_JS, {"selectors": BUBBLE_SELECTORS, "limit": options.limit})
        except PlaywrightError as e:
            logger.error(f"Failed to read messages: {e}")
            return []

        bubbles = []
        for item in raw or []:
            try:
                bubbles.append(BubbleSnapshot.from_dict(item))
            except ExtractionFailure as e:
                logger.error(f"Failed to extract message: {e}")
                # Empty placeholder keeps the msg_<index> numbering
                bubbles.append(BubbleSnapshot())

        messages = parse_bubbles(conversation_id, bubbles)
        logger.info(f">>> Read {len(messages)} messages")
        return messages

    async def send_message(self, user_id: str, text: str) -> bool:
        """
        Type the message and press Enter.

        True means the keypress was issued; delivery is not checked.
        """
        logger.info(f">>> Sending message to user: {user_id}")
        page = await self._open(CONVERSATION_URL.format(id=user_id))

        try:
            await page.wait_for_selector(COMPOSER_READY_SELECTOR, timeout=self.config.selector_timeout_ms)
        except PlaywrightError:
            logger.error("Could not find message input")
            return False

        filled = False
        for selector in COMPOSER_SELECTORS:
            try:
                await page.fill(selector, text)
                filled = True
                break
            except PlaywrightError as e:
                logger.debug(f"Composer selector '{selector}' failed: {e}")

        if not filled:
            logger.error("Could not find message input field")
            return False

        await self.browser.human_delay()
        await page.keyboard.press("Enter")
        await self.browser.human_delay()
        await self.browser.save_cookies()

        logger.info(">>> Message sent")
        return True
