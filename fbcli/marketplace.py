"""
Marketplace search and listing detail extraction.

Live pages are read with a single evaluate() per anchor (or per detail
page) into a snapshot; everything after that is plain parsing so each
heuristic can be tested without a browser.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote, urlencode, urljoin, urlsplit, urlunsplit

from playwright.async_api import Error as PlaywrightError

from .auth import AuthManager
from .browser import BrowserManager
from .config import Config
from .errors import ExtractionFailure
from .models import Listing, SearchOptions, Seller
from .strategies import Strategy, first_match
from .utils import clean_text, closest_radius_bucket, parse_price


logger = logging.getLogger(__name__)

# URLs
SITE_ROOT = "https://www.facebook.com"
MARKETPLACE_BASE = f"{SITE_ROOT}/marketplace"
SEARCH_URL = f"{MARKETPLACE_BASE}/search/"
ITEM_URL = f"{MARKETPLACE_BASE}/item/{{id}}"

# Search results
LISTING_LINK_SELECTOR = "a[href*='/marketplace/item/']"
RESULTS_READY_SELECTOR = "[role='main'] a[href*='/marketplace/item/']"
SCROLL_CYCLES = 3

# Location dialog
LOCATION_PILL_SELECTORS = [
    "span:has-text('Within')",
    "span:has-text('Dans un rayon de')",
    "[role='button'][aria-label*='location' i]",
    "[role='button'][aria-label*='lieu' i]",
]
DIALOG_SELECTOR = "[role='dialog']"
LOCATION_INPUT_SELECTOR = "input[aria-label*='Location' i], input[aria-label*='Lieu' i], input[role='combobox']"
SUGGESTION_SELECTOR = "[role='listbox'] [role='option'], ul[role='listbox'] li"
RADIUS_LABEL_RE = re.compile(r"radius|rayon", re.IGNORECASE)
OPTION_SELECTOR = "[role='option']"
APPLY_SELECTOR = "[aria-label='Apply'][role='button'], [aria-label='Appliquer'][role='button'], [role='button']:has-text('Apply'), [role='button']:has-text('Appliquer')"

# Listing detail
DETAIL_TITLE_SELECTOR = "h1"
DETAIL_CONTENT_SELECTOR = "[role='main'], div[role='dialog']"
DETAIL_POLL_ATTEMPTS = 3

DEFAULT_LOCATION = "Unknown Location"
DEFAULT_DETAIL_TITLE = "Unknown Item"
DEFAULT_SELLER_NAME = "Unknown Seller"
MAX_IMAGES = 5
CDN_HOST = "fbcdn.net"

# "<title> dans <city>, <region>" in image alt text / aria-label
LOCATION_SEPARATORS = (" dans ", " in ")
# " in " is also an ordinary English word: only split when a "City, REGION" follows
STRICT_SEPARATORS = (" in ",)
SELLER_PLACEHOLDERS = ("informations vendeur", "seller information", "seller details")
CONDITION_LABELS = ("condition", "état")

ITEM_ID_RE = re.compile(r"/marketplace/item/(\d+)")
PROFILE_ID_RE = re.compile(r"/marketplace/profile/(\d+)")

_LETTER = r"[^\W\d_]"
# City, REGION with a 2-3 letter uppercase code: "Saint-Ouen, PDL"
CITY_REGION_RE = re.compile(rf"(?:{_LETTER}|[\s'-])+,\s*[A-Z]{{2,3}}")
CITY_REGION_LINE_RE = re.compile(rf"^{_LETTER}(?:{_LETTER}|[\s'.-])*,\s*[A-Z]{{2,3}}$")
RAW_LOCATION_RE = re.compile(rf"((?:{_LETTER}|[\s'-])+?,\s*[A-Z]{{2,3}})(?=\d|\s*K\s*km|$)")
LEADING_PRICE_RE = re.compile(r"^(?:[\d\s.,']+\s*[€$£]|[€$£]\s*[\d\s.,']+)\s*")
PRICE_LINE_RE = re.compile(r"^(?:[A-Z]{0,3}\s*[€$£]?\s*\d[\d\s.,']*\s*[€$£]?|gratuit|free)$", re.IGNORECASE)


ANCHOR_SNAPSHOT_JS = """
(el) => {
  const img = el.querySelector('img');
  return {
    href: el.getAttribute('href') || '',
    text: el.textContent || '',
    lines: (el.innerText || '').split('\\n'),
    ariaLabel: el.getAttribute('aria-label'),
    imgAlt: img ? img.getAttribute('alt') : null,
    imgSrc: img ? (img.currentSrc || img.src || null) : null,
  };
}
"""

DETAIL_SNAPSHOT_JS = """
() => {
  const main = document.querySelector('[role="main"]')
    || document.querySelector('div[role="dialog"]')
    || document.body;
  const text = (el) => (el && el.textContent ? el.textContent.trim() : '');
  return {
    title: text(main.querySelector('h1')),
    bodyText: document.body ? document.body.innerText : '',
    lines: (main.innerText || '').split('\\n'),
    blocks: Array.from(main.querySelectorAll('div'))
      .map((el) => ({ text: text(el), hasHeading: el.querySelector('h1') !== null }))
      .filter((b) => b.text.length > 0 && b.text.length < 1000),
    locationLinks: Array.from(main.querySelectorAll('a[href*="/marketplace/"]')).map((a) => text(a)),
    images: Array.from(main.querySelectorAll('img')).map((img) => img.src || ''),
    sellerLinks: Array.from(main.querySelectorAll('a[href*="/marketplace/profile/"]'))
      .map((a) => ({ href: a.getAttribute('href') || '', text: text(a) })),
  };
}
"""


@dataclass
class AnchorSnapshot:
    """Raw strings read from one search-result anchor."""
    href: str = ""
    text: str = ""
    lines: List[str] = field(default_factory=list)
    aria_label: Optional[str] = None
    img_alt: Optional[str] = None
    img_src: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnchorSnapshot":
        if not isinstance(data, dict):
            raise ExtractionFailure(f"Unexpected anchor snapshot: {data!r}")
        return cls(
            href=data.get("href") or "",
            text=data.get("text") or "",
            lines=list(data.get("lines") or []),
            aria_label=data.get("ariaLabel"),
            img_alt=data.get("imgAlt"),
            img_src=data.get("imgSrc"),
        )


@dataclass
class DetailSnapshot:
    """Raw strings read from the main landmark of a listing page."""
    title: str = ""
    body_text: str = ""
    lines: List[str] = field(default_factory=list)
    blocks: List[Dict[str, Any]] = field(default_factory=list)
    location_links: List[str] = field(default_factory=list)
    images: List[str] = field(default_factory=list)
    seller_links: List[Dict[str, str]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DetailSnapshot":
        return cls(
            title=data.get("title") or "",
            body_text=data.get("bodyText") or "",
            lines=list(data.get("lines") or []),
            blocks=list(data.get("blocks") or []),
            location_links=list(data.get("locationLinks") or []),
            images=list(data.get("images") or []),
            seller_links=list(data.get("sellerLinks") or []),
        )


@dataclass(frozen=True)
class TitleLocation:
    title: Optional[str]
    location: Optional[str]


# ---------------------------------------------------------------------------
# Title / location strategies
# ---------------------------------------------------------------------------

def split_title_location(value: Optional[str]) -> Optional[TitleLocation]:
    """Split "<title> dans <location>"; an empty title stays None."""
    if not value:
        return None
    for sep in LOCATION_SEPARATORS:
        if sep not in value:
            continue
        title, _, location = value.rpartition(sep)
        location = clean_text(location)
        if sep in STRICT_SEPARATORS and not CITY_REGION_RE.fullmatch(location):
            continue
        if location:
            return TitleLocation(title=clean_text(title) or None, location=location)
    return None


def _is_price_line(line: str) -> bool:
    return bool(PRICE_LINE_RE.match(line))


def from_image_alt(snapshot: AnchorSnapshot) -> Optional[TitleLocation]:
    return split_title_location(snapshot.img_alt)


def from_aria_label(snapshot: AnchorSnapshot) -> Optional[TitleLocation]:
    return split_title_location(snapshot.aria_label)


def from_text_lines(snapshot: AnchorSnapshot) -> Optional[TitleLocation]:
    """A rendered "City, CODE" line; the title is the closest non-price line above it."""
    lines = [clean_text(line) for line in snapshot.lines]
    lines = [line for line in lines if line]
    for i, line in enumerate(lines):
        if not CITY_REGION_LINE_RE.match(line):
            continue
        title = next((prev for prev in reversed(lines[:i]) if not _is_price_line(prev)), None)
        return TitleLocation(title=title, location=line)
    return None


def from_raw_text(snapshot: AnchorSnapshot) -> Optional[TitleLocation]:
    """Regex over the concatenated anchor text: "<price><title><City, CODE><mileage>"."""
    text = clean_text(snapshot.text)
    m = RAW_LOCATION_RE.search(text)
    if not m:
        return None
    location = m.group(1).strip()
    before = text[:m.start(1)].strip()
    title = LEADING_PRICE_RE.sub("", before).strip()
    return TitleLocation(title=title or None, location=location)


TITLE_LOCATION_STRATEGIES: Sequence[Strategy] = (
    Strategy("image_alt", from_image_alt),
    Strategy("aria_label", from_aria_label),
    Strategy("text_lines", from_text_lines),
    Strategy("raw_text_regex", from_raw_text),
)


def resolve_title_location(snapshot: AnchorSnapshot) -> TitleLocation:
    """
    First strategy yielding a title wins. Without any title, the first
    strategy yielding a location supplies it and the title stays None.
    """
    _, found = first_match(TITLE_LOCATION_STRATEGIES, snapshot, accept=lambda r: bool(r.title))
    if found is None:
        _, found = first_match(TITLE_LOCATION_STRATEGIES, snapshot, accept=lambda r: bool(r.location))
    return found or TitleLocation(title=None, location=None)


# ---------------------------------------------------------------------------
# Pure parsers
# ---------------------------------------------------------------------------

def build_search_url(options: SearchOptions) -> str:
    """Search URL; location and radius are applied through the UI instead."""
    params: Dict[str, Any] = {"query": options.query}
    if options.min_price is not None:
        params["minPrice"] = options.min_price
    if options.max_price is not None:
        params["maxPrice"] = options.max_price
    return f"{SEARCH_URL}?{urlencode(params, quote_via=quote)}"


def item_url(href: str) -> str:
    """Absolute item URL without query string or fragment."""
    parts = urlsplit(urljoin(SITE_ROOT + "/", href))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, "", ""))


def is_cdn_image(src: Optional[str]) -> bool:
    return bool(src) and src.startswith("http") and CDN_HOST in src


def parse_listing_anchor(
    snapshot: AnchorSnapshot,
    currency: str = "EUR",
    symbol: str = "€",
    category: Optional[str] = None,
) -> Optional[Listing]:
    """Build a Listing from a search-result anchor; None if it is not an item link."""
    m = ITEM_ID_RE.search(snapshot.href)
    if not m:
        return None

    found = resolve_title_location(snapshot)
    images = [snapshot.img_src] if is_cdn_image(snapshot.img_src) else []

    return Listing(
        id=m.group(1),
        title=found.title,
        price=parse_price(snapshot.text, symbol),
        currency=currency,
        location=found.location or DEFAULT_LOCATION,
        images=images,
        url=item_url(snapshot.href),
        category=category,
    )


def dedupe_listings(listings: Sequence[Listing]) -> List[Listing]:
    """Drop repeated ids, keeping the first occurrence."""
    seen = set()
    unique = []
    for listing in listings:
        if listing.id in seen:
            continue
        seen.add(listing.id)
        unique.append(listing)
    return unique


def find_description(blocks: Sequence[Dict[str, Any]], symbol: str = "€") -> Optional[str]:
    """
    First block that reads like prose: 50-500 chars, no nested heading,
    no price glyph, more than five words.
    """
    for block in blocks:
        text = (block.get("text") or "").strip()
        if not 50 < len(text) < 500:
            continue
        if block.get("hasHeading") or symbol in text:
            continue
        if len(text.split(" ")) > 5:
            return text
    return None


def find_location(link_texts: Sequence[str]) -> str:
    for text in link_texts:
        text = clean_text(text)
        if text and CITY_REGION_RE.search(text):
            return text
    return DEFAULT_LOCATION


def find_images(srcs: Sequence[str], limit: int = MAX_IMAGES) -> List[str]:
    images: List[str] = []
    for src in srcs:
        if is_cdn_image(src) and src not in images:
            images.append(src)
        if len(images) >= limit:
            break
    return images


def find_seller(links: Sequence[Dict[str, str]]) -> Seller:
    """First profile link with a real name rather than the seller-info boilerplate."""
    for link in links:
        name = clean_text(link.get("text"))
        if not name or any(p in name.lower() for p in SELLER_PLACEHOLDERS):
            continue
        m = PROFILE_ID_RE.search(link.get("href") or "")
        return Seller(id=m.group(1) if m else "", name=name)
    return Seller(id="", name=DEFAULT_SELLER_NAME)


def find_labeled_value(lines: Sequence[str], labels: Sequence[str]) -> Optional[str]:
    """Value on the line after a label line, e.g. "Condition" / "Used - good"."""
    cleaned = [clean_text(line) for line in lines]
    cleaned = [line for line in cleaned if line]
    for i, line in enumerate(cleaned[:-1]):
        if line.lower() in labels:
            return cleaned[i + 1]
    return None


def parse_listing_detail(
    listing_id: str,
    snapshot: DetailSnapshot,
    url: str,
    currency: str = "EUR",
    symbol: str = "€",
) -> Listing:
    return Listing(
        id=listing_id,
        title=clean_text(snapshot.title) or DEFAULT_DETAIL_TITLE,
        price=parse_price(snapshot.body_text, symbol),
        currency=currency,
        location=find_location(snapshot.location_links),
        description=find_description(snapshot.blocks, symbol),
        images=find_images(snapshot.images),
        seller=find_seller(snapshot.seller_links),
        url=url,
        condition=find_labeled_value(snapshot.lines, CONDITION_LABELS),
    )


# ---------------------------------------------------------------------------
# Browser-facing scraper
# ---------------------------------------------------------------------------

class MarketplaceScraper:
    """Marketplace search and listing pages over the shared browser page."""

    def __init__(self, config: Config, browser: BrowserManager, auth: AuthManager):
        self.config = config
        self.browser = browser
        self.auth = auth

    async def search(self, options: SearchOptions) -> List[Listing]:
        await self.auth.ensure_logged_in()
        page = self.browser.get_page()

        url = build_search_url(options)
        logger.info(f">>> Searching marketplace for: {options.query}")
        await self.browser.goto(url)
        await self.browser.human_delay()

        if not await self._wait_for_results(page):
            logger.warning("No listings found or page took too long to load")
            return []

        if options.location:
            await self.apply_location_filter(page, options.location, options.radius)

        # Lazy-loaded results
        for _ in range(SCROLL_CYCLES):
            await self.browser.human_scroll()

        links = await page.locator(LISTING_LINK_SELECTOR).all()
        logger.debug(f"Found {len(links)} listing links")

        listings: List[Listing] = []
        for link in links[:options.limit]:
            try:
                raw = await link.evaluate(ANCHOR_SNAPSHOT_JS)
                listing = parse_listing_anchor(
                    AnchorSnapshot.from_dict(raw),
                    currency=self.config.currency,
                    symbol=self.config.currency_symbol,
                    category=options.category,
                )
            except Exception as e:
                logger.error(f"Failed to extract listing: {e}")
                continue
            if listing is None:
                continue
            logger.debug(f"Found item: {listing.id} | {listing.title} | {listing.price} | {listing.location}")
            listings.append(listing)

        unique = dedupe_listings(listings)[:options.limit]
        logger.info(f">>> Extracted {len(unique)} listings")
        return unique

    async def _wait_for_results(self, page) -> bool:
        try:
            await page.wait_for_selector(
                RESULTS_READY_SELECTOR, timeout=self.config.selector_timeout_ms, state="visible"
            )
            return True
        except PlaywrightError:
            return False

    async def apply_location_filter(self, page, location: str, radius: Optional[int] = None) -> bool:
        """
        Set the search location (and radius) through the location dialog.

        Failures leave the site's default location in place.
        """
        try:
            pill = await self._first_visible(page, LOCATION_PILL_SELECTORS)
            if pill is None:
                logger.warning("Location filter control not found, using default location")
                return False
            await pill.click()
            await self.browser.human_delay()

            dialog = page.locator(DIALOG_SELECTOR).first
            await dialog.wait_for(state="visible", timeout=self.config.selector_timeout_ms)

            location_input = dialog.locator(LOCATION_INPUT_SELECTOR).first
            await self._type_location(location_input, location)

            suggestion = page.locator(SUGGESTION_SELECTOR).first
            await suggestion.wait_for(state="visible", timeout=self.config.selector_timeout_ms)
            await suggestion.click()
            await self.browser.human_delay()

            if radius:
                await self._select_radius(page, dialog, radius)

            await dialog.locator(APPLY_SELECTOR).first.click()
            await self.browser.human_delay()
            await self._wait_for_results(page)
        except PlaywrightError as e:
            logger.warning(f"Setting location failed, using default location: {e}")
            return False

        logger.info(f">>> Location set to {location}")
        return True

    async def _first_visible(self, page, selectors: Sequence[str]):
        for selector in selectors:
            candidate = page.locator(selector).first
            try:
                if await candidate.count() > 0 and await candidate.is_visible():
                    return candidate
            except PlaywrightError:
                continue
        return None

    async def _type_location(self, location_input, location: str) -> None:
        """Type into the combobox, retrying once if the field does not take it."""
        for attempt in range(2):
            await location_input.click()
            await location_input.fill("")
            await location_input.press_sequentially(location, delay=80)
            await self.browser.human_delay()
            typed = await location_input.input_value()
            if clean_text(typed).lower() == clean_text(location).lower():
                return
            logger.debug(f"Location field shows '{typed}' (attempt {attempt + 1}), retrying")

    async def _select_radius(self, page, dialog, radius: int) -> None:
        bucket = closest_radius_bucket(radius)
        logger.debug(f"Radius {radius} -> {bucket}")
        await dialog.get_by_role("combobox", name=RADIUS_LABEL_RE).click()
        await self.browser.human_delay()
        option = page.locator(OPTION_SELECTOR).filter(
            has_text=re.compile(rf"^\s*{bucket}\s*(km|kilom[eè]tres?|mi|miles?)\s*$", re.IGNORECASE)
        ).first
        await option.click()
        await self.browser.human_delay()

    async def get_listing(self, listing_id: str) -> Optional[Listing]:
        """Listing detail page; None when the content never shows up."""
        await self.auth.ensure_logged_in()
        page = self.browser.get_page()

        url = ITEM_URL.format(id=listing_id)
        logger.info(f">>> Fetching listing: {listing_id}")
        await self.browser.goto(url)
        await self.browser.human_delay()

        if not await self._wait_for_detail(page):
            logger.error("Listing content not found")
            return None

        try:
            raw = await page.evaluate(DETAIL_SNAPSHOT_JS)
        except PlaywrightError as e:
            logger.error(f"Failed to read listing page: {e}")
            return None

        return parse_listing_detail(
            listing_id,
            DetailSnapshot.from_dict(raw or {}),
            url=url,
            currency=self.config.currency,
            symbol=self.config.currency_symbol,
        )

    async def _wait_for_detail(self, page) -> bool:
        for _ in range(DETAIL_POLL_ATTEMPTS):
            has_title = await page.locator(DETAIL_TITLE_SELECTOR).count() > 0
            has_content = await page.locator(DETAIL_CONTENT_SELECTOR).count() > 0
            if has_title or has_content:
                return True
            await self.browser.human_delay()
        return False
