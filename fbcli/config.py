"""
Configuration and settings management.
"""
import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from dotenv import load_dotenv

from .errors import ConfigurationError


DEFAULT_SESSION_DIR = os.path.join(os.path.expanduser("~"), ".config", "facebook-cli", "sessions")
DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)
SESSION_FILE_NAME = "cookies.json"


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _parse_viewport(raw: Optional[str]) -> Dict[str, int]:
    """Parse "1280x900" into a Playwright viewport dict."""
    default = {"width": 1920, "height": 1080}
    if not raw:
        return default
    try:
        width, height = raw.lower().split("x", 1)
        return {"width": int(width), "height": int(height)}
    except ValueError:
        return default


@dataclass
class Config:
    """Application configuration.

    One instance is built per process and handed to every service, so
    ``headless`` doubles as the runtime flag flipped by ``--headed``.
    """

    # Credentials
    email: str = ""
    password: str = ""
    pin: str = ""

    # Session
    session_dir: str = DEFAULT_SESSION_DIR

    # Browser
    headless: bool = True
    slow_mo: int = 0
    viewport: Dict[str, int] = field(default_factory=lambda: {"width": 1920, "height": 1080})
    user_agent: str = DEFAULT_USER_AGENT
    locale: str = "fr-FR"

    # Timeouts (ms)
    timeout_ms: int = 30_000
    selector_timeout_ms: int = 10_000
    probe_timeout_ms: int = 5_000
    login_timeout_ms: int = 30_000
    pin_dialog_wait_ms: int = 3_000

    # Human pacing (ms)
    delay_min_ms: int = 1_000
    delay_max_ms: int = 5_000

    # Observed marketplace locale
    currency: str = "EUR"
    currency_symbol: str = "€"

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "Config":
        """Build configuration from the environment (and a .env file if present)."""
        load_dotenv(dotenv_path)
        return cls(
            email=os.getenv("FACEBOOK_EMAIL", ""),
            password=os.getenv("FACEBOOK_PASSWORD", ""),
            pin=os.getenv("FACEBOOK_PIN", ""),
            session_dir=os.getenv("FACEBOOK_SESSION_DIR") or DEFAULT_SESSION_DIR,
            headless=os.getenv("FACEBOOK_HEADLESS", "").strip().lower() != "false",
            slow_mo=_env_int("FACEBOOK_SLOW_MO", 0),
            viewport=_parse_viewport(os.getenv("FACEBOOK_VIEWPORT")),
            user_agent=os.getenv("FACEBOOK_USER_AGENT") or DEFAULT_USER_AGENT,
            locale=os.getenv("FACEBOOK_LOCALE") or "fr-FR",
            timeout_ms=_env_int("FACEBOOK_TIMEOUT", 30_000),
            delay_min_ms=_env_int("FACEBOOK_DELAY_MIN", 1_000),
            delay_max_ms=_env_int("FACEBOOK_DELAY_MAX", 5_000),
            currency=os.getenv("FACEBOOK_CURRENCY") or "EUR",
            currency_symbol=os.getenv("FACEBOOK_CURRENCY_SYMBOL") or "€",
        )

    @property
    def session_path(self) -> str:
        return os.path.join(self.session_dir, SESSION_FILE_NAME)

    def validate_credentials(self) -> None:
        """Fail fast when login credentials are not configured."""
        if not self.email or not self.password:
            raise ConfigurationError("FACEBOOK_EMAIL and FACEBOOK_PASSWORD must be set in .env file")
