"""
Utility functions for logging, text processing, price parsing and pacing.
"""
import asyncio
import logging
import random
import re
from datetime import datetime, timezone
from typing import Optional, Sequence


RADIUS_BUCKETS = (10, 25, 50, 100, 250)
SCROLL_MIN_PX = 200
SCROLL_MAX_PX = 700

# Spaces, no-break spaces (French thousands separators) and punctuation.
# Line breaks end a number.
_SPACES = " \u00a0\u202f"
_GROUPING_CHARS = re.compile("[" + _SPACES + ".,']")


def init_logger(
    name: str = "fbcli",
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    log_file: Optional[str] = "fbcli.log"
) -> logging.Logger:
    """Initialize logger with console and optional file handlers."""
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    if logger.handlers:
        return logger

    console_level_num = getattr(logging, console_level.upper(), logging.INFO)
    # stderr: stdout carries the rendered command output
    ch = logging.StreamHandler()
    ch.setLevel(console_level_num)

    fmt = logging.Formatter("%(asctime)s [%(levelname)s] %(message)s")
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    if log_file:  # Create file handler only if log_file is provided
        file_level_num = getattr(logging, file_level.upper(), logging.DEBUG)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level_num)
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    return logger


def now_utc() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def now_iso() -> str:
    """Return current UTC timestamp in ISO format."""
    return now_utc().isoformat()


def clean_text(s: Optional[str]) -> str:
    """Clean and normalize text by removing extra whitespace."""
    if not s:
        return ""
    s = re.sub(r"\s+", " ", s)
    return s.strip()


def _digits_to_int(raw: str) -> Optional[int]:
    raw = raw.strip()
    # "1 250,50" -> drop the cents before stripping separators
    raw = re.sub(r"[.,]\d{1,2}$", "", raw)
    digits = _GROUPING_CHARS.sub("", raw)
    if not digits.isdigit():
        return None
    return int(digits)


def parse_price(text: Optional[str], symbol: str = "€") -> int:
    """
    Parse an integer price from free text.

    Looks for a number immediately followed by the currency glyph
    ("1 250 €"), then for the glyph followed by a number ("€1,250").
    Returns 0 when nothing usable is found.
    """
    if not text:
        return 0

    sym = re.escape(symbol)
    digits = "[\\d" + _SPACES + ".,']"
    gap = "[" + _SPACES + "]*"
    number = r"(\d" + digits + "*?)"
    for pattern in (number + gap + sym, sym + gap + r"(\d" + digits + r"*\d|\d)"):
        m = re.search(pattern, text)
        if m:
            value = _digits_to_int(m.group(1))
            if value is not None:
                return value
    return 0


def jitter_ms(min_ms: int, max_ms: int, fixed_ms: Optional[int] = None) -> int:
    """Pick a randomized wait in milliseconds, or return the fixed override."""
    if fixed_ms is not None:
        return max(0, int(fixed_ms))
    low, high = int(min_ms), int(max_ms)
    if high < low:
        low, high = high, low
    return random.randint(max(0, low), max(0, high))


async def random_delay(min_ms: int, max_ms: int, fixed_ms: Optional[int] = None) -> None:
    """Sleep for a jittered duration."""
    await asyncio.sleep(jitter_ms(min_ms, max_ms, fixed_ms) / 1000)


def scroll_amount() -> int:
    """Random scroll distance in pixels for one human-like scroll step."""
    return random.randint(SCROLL_MIN_PX, SCROLL_MAX_PX)


def closest_radius_bucket(radius: float, buckets: Sequence[int] = RADIUS_BUCKETS) -> int:
    """
    Map a requested radius onto the nearest radius the site offers.

    Ties go to the smaller bucket.
    """
    return min(sorted(buckets), key=lambda b: abs(b - radius))
