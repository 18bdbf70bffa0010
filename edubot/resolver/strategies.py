"""
Element lookup strategies.

Each strategy takes the browser and a selector description and returns an
element handle or None. Strategies never retry and never wait; the resolver
owns ordering and retries.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from edubot.core.interfaces import BrowserPort
from edubot.core.types import SelectorDescription

StrategyFn = Callable[[BrowserPort, SelectorDescription], Awaitable[Optional[Any]]]

STABLE_ATTRIBUTE_NAMES = ("role", "placeholder", "title")


def css_string(value: str) -> str:
    """Quote a value for use inside a CSS attribute selector."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def xpath_literal(text: str) -> str:
    """Quote text as an XPath string literal, whatever quotes it contains."""
    if '"' not in text:
        return f'"{text}"'
    if "'" not in text:
        return f"'{text}'"
    parts = text.split('"')
    pieces: List[str] = []
    for i, part in enumerate(parts):
        if part:
            pieces.append(f'"{part}"')
        if i < len(parts) - 1:
            pieces.append("'\"'")
    return f"concat({', '.join(pieces)})"


def is_stable_attribute(key: str) -> bool:
    return (
        key.startswith("data-")
        or key.startswith("aria-")
        or key in STABLE_ATTRIBUTE_NAMES
    )


def ordered_stable_attributes(attributes: Dict[str, str]) -> List[Tuple[str, str]]:
    """data-* first, then aria-*, then role, placeholder and title."""
    def rank(key: str) -> int:
        if key.startswith("data-"):
            return 0
        if key.startswith("aria-"):
            return 1
        return 2 + STABLE_ATTRIBUTE_NAMES.index(key)

    stable = [(k, v) for k, v in attributes.items() if is_stable_attribute(k) and v]
    return sorted(stable, key=lambda item: rank(item[0]))


async def by_primary(browser: BrowserPort, description: SelectorDescription) -> Optional[Any]:
    if not description.primary:
        return None
    return await browser.query_selector(description.primary)


async def by_id(browser: BrowserPort, description: SelectorDescription) -> Optional[Any]:
    if not description.id:
        return None
    return await browser.query_selector(f"[id={css_string(description.id)}]")


async def by_name(browser: BrowserPort, description: SelectorDescription) -> Optional[Any]:
    if not description.name:
        return None
    return await browser.query_selector(f"[name={css_string(description.name)}]")


async def by_stable_attributes(
    browser: BrowserPort, description: SelectorDescription
) -> Optional[Any]:
    for key, value in ordered_stable_attributes(description.attributes):
        element = await browser.query_selector(f"[{key}={css_string(value)}]")
        if element is not None:
            return element
    return None


async def by_xpath(browser: BrowserPort, description: SelectorDescription) -> Optional[Any]:
    if not description.xpath:
        return None
    return await browser.query_xpath(description.xpath)


async def by_css(browser: BrowserPort, description: SelectorDescription) -> Optional[Any]:
    if not description.css:
        return None
    return await browser.query_selector(description.css)


async def by_text(browser: BrowserPort, description: SelectorDescription) -> Optional[Any]:
    if not description.text:
        return None
    return await browser.query_xpath(
        f"//*[contains(text(), {xpath_literal(description.text)})]"
    )


async def by_position(browser: BrowserPort, description: SelectorDescription) -> Optional[Any]:
    if not description.position:
        return None
    return await browser.query_child(
        description.position.parent, description.position.index
    )


# Resolution order. Earlier entries win when several would match.
DEFAULT_STRATEGIES: List[Tuple[str, StrategyFn]] = [
    ("primary", by_primary),
    ("id", by_id),
    ("name", by_name),
    ("attributes", by_stable_attributes),
    ("xpath", by_xpath),
    ("css", by_css),
    ("text", by_text),
    ("position", by_position),
]
