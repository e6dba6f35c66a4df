"""
Service wiring and command execution.

Every command runs inside ``run_command``, which always closes the browser
(and so flushes cookies) and turns fatal errors into a ``Result``.
"""
import logging
from typing import Any, Awaitable, Callable, Optional

from .auth import AuthManager
from .browser import BrowserManager
from .challenge import PinChallengeHandler
from .config import Config
from .errors import ErrorKind, FacebookCliError, Result
from .marketplace import MarketplaceScraper
from .messenger import MessengerClient
from .models import MessageOptions, SearchOptions
from .session_store import SessionStore

logger = logging.getLogger(__name__)

Handler = Callable[["Services"], Awaitable[Any]]


class Services:
    """Explicitly constructed object graph sharing one browser and one page."""

    def __init__(self, config: Config, session_store: Optional[SessionStore] = None,
                 browser: Optional[BrowserManager] = None):
        self.config = config
        self.session_store = session_store or SessionStore(config.session_path)
        self.browser = browser or BrowserManager(config, self.session_store)
        self.auth = AuthManager(config, self.browser)
        self.pin_handler = PinChallengeHandler(config, self.browser)
        self.marketplace = MarketplaceScraper(config, self.browser, self.auth)
        self.messenger = MessengerClient(config, self.browser, self.auth, self.pin_handler)


async def run_command(services: Services, handler: Handler, headed: bool = False) -> Result:
    """Run one command handler with guaranteed browser cleanup."""
    if headed:
        services.browser.set_headless(False)
    try:
        value = await handler(services)
    except FacebookCliError as e:
        logger.error(f"Command failed ({e.kind.value}): {e}")
        return Result.from_exception(e)
    finally:
        await services.browser.close()

    if isinstance(value, Result):
        return value
    return Result.success(value)


# Command handlers

def search(options: SearchOptions) -> Handler:
    async def handler(services: Services):
        return await services.marketplace.search(options)
    return handler


def listing(listing_id: str) -> Handler:
    async def handler(services: Services):
        found = await services.marketplace.get_listing(listing_id)
        if found is None:
            return Result.failure(ErrorKind.NOT_FOUND, "Listing not found")
        return found
    return handler


def list_conversations(limit: int) -> Handler:
    async def handler(services: Services):
        return await services.messenger.list_conversations(MessageOptions(limit=limit))
    return handler


def read_conversation(conversation_id: str, limit: int) -> Handler:
    async def handler(services: Services):
        return await services.messenger.read_conversation(conversation_id, MessageOptions(limit=limit))
    return handler


def send_message(user_id: str, text: str) -> Handler:
    async def handler(services: Services):
        if not await services.messenger.send_message(user_id, text):
            return Result.failure(ErrorKind.SEND_FAILED, "Failed to send message")
        return {"success": True, "message": "Message sent"}
    return handler


def logout() -> Handler:
    async def handler(services: Services):
        await services.browser.launch()
        await services.auth.logout()
        return {"success": True, "message": "Logged out"}
    return handler
