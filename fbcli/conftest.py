"""
In-memory stand-ins for the Playwright page/locator API used by the tests.

A FakePage maps selector strings to lists of FakeElement. Nested
locators ignore scoping and look the selector up on the page again, which
is enough for the extractors since they only care about the first hit.
"""
import re
from typing import Any, Callable, Dict, List, Optional

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from .auth import LOGGED_IN_SELECTOR
from .browser import BrowserManager
from .config import Config
from .session_store import SessionStore


class FakeElement:
    def __init__(self, text: str = "", attrs: Optional[Dict[str, str]] = None, visible: bool = True,
                 snapshot: Any = None, on_click: Optional[Callable[[], None]] = None,
                 fill_error: bool = False, dropped_typings: int = 0):
        self.text = text
        self.attrs = attrs or {}
        self.visible = visible
        self.snapshot = snapshot
        self.on_click = on_click
        self.fill_error = fill_error
        # press_sequentially() calls the field ignores before taking input
        self.dropped_typings = dropped_typings
        self.typings = 0
        self.value = ""
        self.clicks = 0
        self.pressed: List[str] = []


class FakeLocator:
    def __init__(self, page: "FakePage", selector: str, elements: List[FakeElement]):
        self.page = page
        self.selector = selector
        self.elements = elements

    def _one(self) -> FakeElement:
        if not self.elements:
            raise PlaywrightTimeout(f"Timeout waiting for locator('{self.selector}')")
        return self.elements[0]

    @property
    def first(self) -> "FakeLocator":
        return FakeLocator(self.page, self.selector, self.elements[:1])

    def nth(self, index: int) -> "FakeLocator":
        return FakeLocator(self.page, self.selector, self.elements[index:index + 1])

    def locator(self, selector: str) -> "FakeLocator":
        return self.page.locator(selector)

    def get_by_role(self, role: str, name=None) -> "FakeLocator":
        return self.page.locator(f"role={role}")

    def filter(self, has_text=None) -> "FakeLocator":
        if has_text is None:
            return self
        if isinstance(has_text, re.Pattern):
            kept = [e for e in self.elements if has_text.search(e.text)]
        else:
            kept = [e for e in self.elements if has_text in e.text]
        return FakeLocator(self.page, self.selector, kept)

    async def count(self) -> int:
        return len(self.elements)

    async def all(self) -> List["FakeLocator"]:
        return [FakeLocator(self.page, self.selector, [e]) for e in self.elements]

    async def is_visible(self) -> bool:
        return bool(self.elements) and self.elements[0].visible

    async def wait_for(self, state: str = "visible", timeout: Optional[int] = None) -> None:
        element = self._one()
        if state == "visible" and not element.visible:
            raise PlaywrightTimeout(f"Timeout waiting for locator('{self.selector}') to be visible")

    async def click(self, **kwargs) -> None:
        element = self._one()
        element.clicks += 1
        if element.on_click:
            element.on_click()

    async def fill(self, value: str, **kwargs) -> None:
        element = self._one()
        if element.fill_error:
            raise PlaywrightError(f"Element is not an <input>: {self.selector}")
        element.value = value

    async def press_sequentially(self, text: str, delay: Optional[float] = None) -> None:
        element = self._one()
        element.typings += 1
        if element.typings <= element.dropped_typings:
            return
        element.value += text

    async def input_value(self) -> str:
        return self._one().value

    async def press(self, key: str, **kwargs) -> None:
        self._one().pressed.append(key)

    async def get_attribute(self, name: str) -> Optional[str]:
        return self._one().attrs.get(name)

    async def text_content(self) -> Optional[str]:
        return self._one().text

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        snapshot = self._one().snapshot
        if isinstance(snapshot, Exception):
            raise snapshot
        return snapshot


class FakeKeyboard:
    def __init__(self):
        self.pressed: List[str] = []

    async def press(self, key: str, **kwargs) -> None:
        self.pressed.append(key)


class FakeContext:
    def __init__(self, page: Optional["FakePage"] = None, cookies: Optional[List[dict]] = None):
        self.page = page
        self._cookies = list(cookies or [])
        self.closed = False
        if page is not None:
            page.context = self

    async def new_page(self) -> "FakePage":
        if self.page is None:
            self.page = FakePage(context=self)
        return self.page

    async def cookies(self) -> List[dict]:
        return [dict(c) for c in self._cookies]

    async def add_cookies(self, cookies: List[dict]) -> None:
        self._cookies.extend(dict(c) for c in cookies)

    async def close(self) -> None:
        self.closed = True


class FakePage:
    """
    ``elements`` maps selectors to elements; ``scripts`` maps evaluate()
    scripts to a return value or a callable taking the script argument.
    ``redirects`` rewrites the URL reached by goto().
    """

    def __init__(self, elements: Optional[Dict[str, List[FakeElement]]] = None,
                 scripts: Optional[Dict[str, Any]] = None,
                 redirects: Optional[Dict[str, str]] = None,
                 context: Optional[FakeContext] = None,
                 url: str = "about:blank"):
        self.elements: Dict[str, List[FakeElement]] = elements or {}
        self.scripts = scripts or {}
        self.redirects = redirects or {}
        self.url = url
        self.visited: List[str] = []
        self.waited_ms: List[int] = []
        self.keyboard = FakeKeyboard()
        self.context = context if context is not None else FakeContext(self)

    def add(self, selector: str, *elements: FakeElement) -> None:
        self.elements.setdefault(selector, []).extend(elements)

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, selector, list(self.elements.get(selector, [])))

    async def goto(self, url: str, wait_until: Optional[str] = None, timeout: Optional[int] = None):
        self.visited.append(url)
        self.url = self.redirects.get(url, url)

    async def wait_for_selector(self, selector: str, timeout: Optional[int] = None, state: Optional[str] = None):
        elements = self.elements.get(selector, [])
        if not elements or (state == "visible" and not elements[0].visible):
            raise PlaywrightTimeout(f"Timeout {timeout}ms exceeded waiting for '{selector}'")
        return FakeLocator(self, selector, elements[:1])

    async def wait_for_url(self, pattern, timeout: Optional[int] = None) -> None:
        if not re.search(pattern, self.url):
            raise PlaywrightTimeout(f"Timeout {timeout}ms exceeded waiting for URL {pattern}")

    async def wait_for_timeout(self, ms: int) -> None:
        self.waited_ms.append(ms)

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        result = self.scripts.get(script)
        if isinstance(result, Exception):
            raise result
        if callable(result):
            return result(arg)
        return result

    async def fill(self, selector: str, value: str, **kwargs) -> None:
        await self.locator(selector).first.fill(value)


class StubBrowserManager(BrowserManager):
    """BrowserManager whose launch hands out a FakePage instead of Chromium."""

    def __init__(self, config: Config, page: FakePage, session_store: Optional[SessionStore] = None):
        super().__init__(config, session_store)
        self.fake_page = page
        self.launches = 0

    async def _start_browser(self):
        self.launches += 1
        return self.fake_page.context


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(
        email="user@example.com",
        password="hunter2",
        pin="123456",
        session_dir=str(tmp_path / "sessions"),
        delay_min_ms=0,
        delay_max_ms=0,
        pin_dialog_wait_ms=0,
    )


@pytest.fixture
def page() -> FakePage:
    return FakePage()


@pytest.fixture
def logged_in_page(page) -> FakePage:
    """Page whose facebook.com root shows the logged-in navigation."""
    page.add(LOGGED_IN_SELECTOR, FakeElement())
    return page


@pytest.fixture
def browser(config, page) -> StubBrowserManager:
    return StubBrowserManager(config, page)
