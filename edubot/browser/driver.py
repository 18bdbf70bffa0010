"""
Playwright browser driver implementation.
"""

import asyncio
import os
from pathlib import Path
from typing import Any, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    ElementHandle,
    Error as PlaywrightError,
    Page,
    async_playwright,
)

from edubot.config.settings import get_settings, normalize_wait_until
from edubot.core.interfaces import BrowserPort
from edubot.monitoring.logger import get_logger, log_performance_metric

# Fallback when a custom widget ignores native option selection.
_SET_VALUE_AND_NOTIFY = """
(el, value) => {
    el.value = value;
    el.dispatchEvent(new Event('input', { bubbles: true }));
    el.dispatchEvent(new Event('change', { bubbles: true }));
}
"""


class PlaywrightDriver(BrowserPort):
    """Playwright-based browser session for workflow runs."""

    def __init__(
        self,
        headless: Optional[bool] = None,
        viewport_width: Optional[int] = None,
        viewport_height: Optional[int] = None,
        timeout: Optional[int] = None,
        cdp_url: Optional[str] = None,
    ) -> None:
        """
        Initialize the Playwright driver.

        Args:
            headless: Run browser in headless mode
            viewport_width: Browser viewport width
            viewport_height: Browser viewport height
            timeout: Default timeout in milliseconds
            cdp_url: Attach to an existing Chrome instead of launching one
        """
        settings = get_settings()
        self.headless = headless if headless is not None else settings.browser_headless
        self.viewport_width = viewport_width or settings.browser_viewport_width
        self.viewport_height = viewport_height or settings.browser_viewport_height
        self.timeout = timeout or settings.browser_timeout
        self.cdp_url = cdp_url or settings.browser_cdp_url
        self.user_agent = settings.browser_user_agent
        self.accept_language = settings.browser_accept_language
        self.default_wait_until = settings.navigation_wait_until

        self.logger = get_logger("browser.driver")
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._attached = False

    @property
    def is_open(self) -> bool:
        return self._page is not None and not self._page.is_closed()

    @property
    def page(self) -> Optional[Page]:
        """Get the current page object (for advanced operations)."""
        return self._page

    def _require_page(self) -> Page:
        if not self._page:
            raise RuntimeError("Browser not started. Call launch() first.")
        return self._page

    async def launch(self, headless: Optional[bool] = None) -> None:
        """Start the browser and create a page."""
        if headless is not None:
            self.headless = headless

        if self._playwright is None:
            self._playwright = await async_playwright().start()

        if self._browser is None and self.cdp_url:
            try:
                self._browser = await self._playwright.chromium.connect_over_cdp(
                    self.cdp_url
                )
                self._attached = True
                self.logger.info(
                    "Attached to running browser", extra={"cdp_url": self.cdp_url}
                )
            except PlaywrightError as e:
                self.logger.warning(
                    "Could not attach over CDP, launching a new browser",
                    extra={"cdp_url": self.cdp_url, "error": str(e)},
                )

        if self._browser is None:
            self.logger.info(
                "Starting browser",
                extra={
                    "headless": self.headless,
                    "viewport": f"{self.viewport_width}x{self.viewport_height}",
                },
            )
            launch_args = [
                "--no-sandbox",
                "--disable-dev-shm-usage",
                "--disable-extensions",
                "--no-first-run",
                "--no-default-browser-check",
            ]

            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=launch_args,
                env=os.environ,
            )

        if self._context is None:
            if self._attached and self._browser.contexts:
                self._context = self._browser.contexts[0]
            else:
                self._context = await self._browser.new_context(
                    viewport={
                        "width": self.viewport_width,
                        "height": self.viewport_height,
                    },
                    user_agent=self.user_agent,
                    extra_http_headers={"Accept-Language": self.accept_language},
                )
            self._context.set_default_timeout(self.timeout)

        if self._page is None:
            self._page = await self._context.new_page()
            self._page.on("console", self._on_console)
            self._page.on("pageerror", self._on_page_error)

    def _on_console(self, message: Any) -> None:
        self.logger.debug(
            "Page console", extra={"console_type": message.type, "text": message.text}
        )

    def _on_page_error(self, error: Any) -> None:
        self.logger.warning("Page error", extra={"error": str(error)})

    async def close(self) -> None:
        """Stop the browser and cleanup resources."""
        if self._page:
            if not self._page.is_closed():
                await self._page.close()
            self._page = None

        if self._context:
            if not self._attached:
                await self._context.close()
            self._context = None

        if self._browser:
            # Leave an attached browser running for the operator
            if not self._attached:
                await self._browser.close()
            self._browser = None

        if self._playwright:
            await self._playwright.stop()
            self._playwright = None

        self._attached = False
        self.logger.info("Browser stopped")

    async def navigate(self, url: str, wait_until: Optional[str] = None) -> None:
        """Navigate to a URL."""
        if not self._page:
            await self.launch()

        condition = normalize_wait_until(wait_until, self.default_wait_until)
        self.logger.info("Navigating to URL", extra={"url": url, "wait_until": condition})
        start_time = asyncio.get_running_loop().time()

        await self._page.goto(url, wait_until=condition)

        elapsed_ms = (asyncio.get_running_loop().time() - start_time) * 1000
        log_performance_metric("page_navigation", elapsed_ms, context={"url": url})

    async def get_current_url(self) -> str:
        """Get the current page URL."""
        return self._require_page().url

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        page = self._require_page()
        if arg is None:
            return await page.evaluate(expression)
        return await page.evaluate(expression, arg)

    async def screenshot(self, path: Path, full_page: bool = True) -> None:
        """
        Save a screenshot to file.

        Args:
            path: Path to save the screenshot
            full_page: Capture the whole scrollable page
        """
        page = self._require_page()
        self.logger.info("Saving screenshot", extra={"path": str(path)})
        await page.screenshot(path=str(path), type="png", full_page=full_page)

    async def wait(self, milliseconds: int) -> None:
        """Wait for specified duration."""
        self.logger.debug("Waiting", extra={"milliseconds": milliseconds})
        if self._page:
            await self._page.wait_for_timeout(milliseconds)
        else:
            await asyncio.sleep(milliseconds / 1000)

    async def query_selector(self, selector: str) -> Optional[ElementHandle]:
        return await self._require_page().query_selector(selector)

    async def query_xpath(self, xpath: str) -> Optional[ElementHandle]:
        return await self._require_page().query_selector(f"xpath={xpath}")

    async def query_child(self, parent_selector: str, index: int) -> Optional[ElementHandle]:
        parent = await self._require_page().query_selector(parent_selector)
        if parent is None:
            return None
        children = await parent.query_selector_all(":scope > *")
        if 0 <= index < len(children):
            return children[index]
        return None

    async def click_element(self, element: ElementHandle) -> None:
        """Click an element, falling back to a DOM click."""
        try:
            await element.scroll_into_view_if_needed()
            await element.click()
        except PlaywrightError as e:
            self.logger.debug(
                "Native click failed, using DOM click", extra={"error": str(e)}
            )
            await element.evaluate("el => el.click()")

    async def type_into(
        self, element: ElementHandle, text: str, delay_ms: int = 0, clear: bool = True
    ) -> None:
        """Type text into an element."""
        self.logger.debug("Typing text", extra={"length": len(text)})
        await element.scroll_into_view_if_needed()
        if clear:
            await element.click(click_count=3)
            await self._require_page().keyboard.press("Backspace")
            await element.fill("")
        await element.type(text, delay=delay_ms)

    async def select_value(self, element: ElementHandle, value: str) -> None:
        """Select an option by value."""
        try:
            await element.select_option(value=value)
        except PlaywrightError as e:
            self.logger.debug(
                "Native select failed, setting value directly", extra={"error": str(e)}
            )
            await element.evaluate(_SET_VALUE_AND_NOTIFY, value)

    async def __aenter__(self) -> "PlaywrightDriver":
        """Async context manager entry."""
        await self.launch()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
