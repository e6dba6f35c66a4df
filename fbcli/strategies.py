"""
Ordered fallback chains.

DOM heuristics are expressed as named strategies tried in order; the first
usable result wins. Pure strategies take an already-extracted snapshot,
selector strategies probe the live page.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Optional, Sequence, Tuple, TypeVar

from playwright.async_api import Error as PlaywrightError

logger = logging.getLogger(__name__)

S = TypeVar("S")
T = TypeVar("T")


@dataclass(frozen=True)
class Strategy(Generic[S, T]):
    """A named extraction step: scope -> result or None."""

    name: str
    fn: Callable[[S], Optional[T]]

    def __call__(self, scope: S) -> Optional[T]:
        return self.fn(scope)


def first_match(
    strategies: Sequence[Strategy],
    scope: Any,
    accept: Optional[Callable[[Any], bool]] = None,
) -> Tuple[Optional[str], Optional[Any]]:
    """
    Run strategies in order and return (name, result) of the first success.

    ``accept`` narrows what counts as success. Returns (None, None) when no
    strategy qualifies.
    """
    for strategy in strategies:
        result = strategy(scope)
        if result is None:
            continue
        if accept is not None and not accept(result):
            continue
        logger.debug(f"Strategy '{strategy.name}' matched")
        return strategy.name, result
    return None, None


async def first_populated(page, selectors: Sequence[str]) -> Tuple[Optional[str], List[Any]]:
    """
    Return the first selector that matches anything, with its elements.

    Selector errors are logged and the next selector is tried.
    """
    for selector in selectors:
        try:
            locator = page.locator(selector)
            count = await locator.count()
            logger.debug(f"Selector '{selector}' found {count} elements")
            if count > 0:
                return selector, await locator.all()
        except PlaywrightError as e:
            logger.debug(f"Selector '{selector}' failed: {e}")
    return None, []
