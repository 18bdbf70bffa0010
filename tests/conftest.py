"""
Shared fixtures: an in-memory browser double and fast settings.
"""

import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from edubot.config.settings import Settings
from edubot.core.interfaces import BrowserPort
from edubot.error_handling import BrowserError
from edubot.execution.login import LOGIN_PROBE_SCRIPT
from edubot.persistence import InMemoryStore


class FakeElement:
    """Stand-in for an element handle."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"FakeElement({self.name!r})"


class FakeBrowser(BrowserPort):
    """
    Browser port double.

    Elements are registered by the exact CSS selector or XPath that should
    find them. Every call is recorded for assertions.
    """

    def __init__(self, url: str = "about:blank") -> None:
        self.url = url
        self.elements: Dict[str, FakeElement] = {}
        self.children: Dict[Tuple[str, int], FakeElement] = {}
        self.login_markers: Dict[str, bool] = {"hasLogoutMarker": True}
        self.evaluate_handler: Optional[Callable[[str, Any], Any]] = None
        self.click_failures = 0

        self.launch_count = 0
        self.close_count = 0
        self.navigations: List[str] = []
        self.evaluations: List[Tuple[str, Any]] = []
        self.clicked: List[FakeElement] = []
        self.typed: List[Tuple[FakeElement, str]] = []
        self.selected: List[Tuple[FakeElement, str]] = []
        self.screenshots: List[Tuple[Path, bool]] = []
        self.waits: List[int] = []
        self._open = False

    def add_element(self, selector: str, name: Optional[str] = None) -> FakeElement:
        element = FakeElement(name or selector)
        self.elements[selector] = element
        return element

    @property
    def is_open(self) -> bool:
        return self._open

    async def launch(self, headless: Optional[bool] = None) -> None:
        self.launch_count += 1
        self._open = True

    async def close(self) -> None:
        self.close_count += 1
        self._open = False

    async def navigate(self, url: str, wait_until: Optional[str] = None) -> None:
        self.navigations.append(url)
        self.url = url

    async def get_current_url(self) -> str:
        return self.url

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        self.evaluations.append((expression, arg))
        if expression == LOGIN_PROBE_SCRIPT:
            return dict(self.login_markers)
        if self.evaluate_handler is not None:
            return self.evaluate_handler(expression, arg)
        return None

    async def screenshot(self, path: Path, full_page: bool = True) -> None:
        self.screenshots.append((Path(path), full_page))

    async def wait(self, milliseconds: int) -> None:
        self.waits.append(milliseconds)

    async def query_selector(self, selector: str) -> Optional[FakeElement]:
        return self.elements.get(selector)

    async def query_xpath(self, xpath: str) -> Optional[FakeElement]:
        return self.elements.get(xpath)

    async def query_child(self, parent_selector: str, index: int) -> Optional[FakeElement]:
        return self.children.get((parent_selector, index))

    async def click_element(self, element: FakeElement) -> None:
        if self.click_failures > 0:
            self.click_failures -= 1
            raise BrowserError("Click intercepted", action="click")
        self.clicked.append(element)

    async def type_into(
        self, element: FakeElement, text: str, delay_ms: int = 0, clear: bool = True
    ) -> None:
        self.typed.append((element, text))

    async def select_value(self, element: FakeElement, value: str) -> None:
        self.selected.append((element, value))


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until ``predicate`` holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not reached in time")
        await asyncio.sleep(0.01)


@pytest.fixture
def settings(tmp_path):
    """Settings with every delay shortened for tests."""
    return Settings(
        _env_file=None,
        resolver_max_attempts=2,
        resolver_attempt_delay_ms=0,
        resolver_timeout_ms=50,
        step_retry_delay_ms=0,
        default_wait_ms=10,
        type_delay_ms=0,
        min_type_timeout_ms=0,
        initial_page_settle_ms=0,
        login_poll_interval_ms=100,
        login_wait_timeout_ms=1000,
        data_dir=tmp_path / "data",
        screenshots_dir=tmp_path / "screenshots",
        database_path=tmp_path / "data" / "edubot.db",
    )


@pytest.fixture
def fake_browser():
    """Browser double already pointed at the portal home page."""
    return FakeBrowser(url="https://portal.example.edu/home")


@pytest.fixture
def store():
    """Empty in-memory store."""
    return InMemoryStore()


@pytest.fixture
def wait_for():
    """Async polling helper."""
    return wait_until
