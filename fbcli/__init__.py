"""
Facebook Marketplace and Messenger CLI
"""
from .config import Config
from .core import Services, run_command
from .errors import ErrorKind, FacebookCliError, Result
from .export import (
    save_listings,
    to_json,
    to_markdown_conversations,
    to_markdown_listings,
    to_markdown_messages,
)
from .models import Conversation, Listing, Message, SearchOptions
from .utils import init_logger, now_iso

__version__ = "1.0.0"

__all__ = [
    "Config",
    "Services",
    "run_command",
    "ErrorKind",
    "FacebookCliError",
    "Result",
    "save_listings",
    "to_json",
    "to_markdown_conversations",
    "to_markdown_listings",
    "to_markdown_messages",
    "Conversation",
    "Listing",
    "Message",
    "SearchOptions",
    "init_logger",
    "now_iso"
]
