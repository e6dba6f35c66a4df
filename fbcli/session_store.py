"""
Cookie persistence for the authenticated browser session.
"""
import json
import logging
import os
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

COOKIE_KEYS = ("name", "value", "domain", "path", "expires", "httpOnly", "secure", "sameSite")


def _normalize_cookie(raw: Any) -> Dict[str, Any]:
    """Keep the keys Playwright's add_cookies() accepts; {} if unusable."""
    if not isinstance(raw, dict) or not raw.get("name") or "value" not in raw:
        return {}
    cookie = {k: raw[k] for k in COOKIE_KEYS if k in raw and raw[k] is not None}
    cookie.setdefault("domain", ".facebook.com")
    cookie.setdefault("path", "/")
    return cookie


class SessionStore:
    """Reads and writes the session cookie file (a JSON array of cookies)."""

    def __init__(self, path: str):
        self.path = path

    def exists(self) -> bool:
        return os.path.isfile(self.path)

    def load(self) -> List[Dict[str, Any]]:
        """
        Load persisted cookies.

        A missing file is a fresh session; an unreadable or malformed file is
        logged and treated the same way.
        """
        if not self.exists():
            logger.debug(f"No session file at {self.path}")
            return []
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load cookies from {self.path}: {e}")
            return []

        if not isinstance(data, list):
            logger.error(f"Session file {self.path} does not contain a cookie array")
            return []

        cookies = [c for c in (_normalize_cookie(raw) for raw in data) if c]
        logger.debug(f"Loaded {len(cookies)} cookies from {self.path}")
        return cookies

    def save(self, cookies: List[Dict[str, Any]]) -> None:
        """Write cookies to disk, creating the session directory if needed."""
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(list(cookies), f, ensure_ascii=False, indent=2)
        logger.debug(f"Saved {len(cookies)} cookies to {self.path}")
