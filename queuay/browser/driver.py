"""
Playwright browser driver implementation.

`BrowserManager` owns the single browser process of a worker. It is launched
lazily on the first session and closed through an explicit `shutdown()`.
Each story gets its own `PlaywrightSession` backed by a fresh browser context.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    ConsoleMessage,
    Page,
    Playwright,
    async_playwright,
)
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from queuay.config.settings import get_settings
from queuay.core.interfaces import BrowserSession, SessionFactory
from queuay.error_handling.exceptions import BrowserError
from queuay.monitoring.logger import get_logger, log_performance_metric


class PlaywrightSession(BrowserSession):
    """Browser capability over one Playwright page."""

    def __init__(self, page: Page, verification_timeout_ms: int = 5000) -> None:
        self._page = page
        self.verification_timeout_ms = verification_timeout_ms
        self._console_errors: List[str] = []
        self.logger = get_logger("browser.session")
        page.on("console", self._on_console)

    def _on_console(self, message: ConsoleMessage) -> None:
        if message.type == "error":
            self._console_errors.append(message.text)

    @property
    def page(self) -> Page:
        """Underlying page object (for advanced operations)."""
        return self._page

    @property
    def console_errors(self) -> List[str]:
        return list(self._console_errors)

    async def navigate(self, url: str) -> None:
        """Navigate to a URL."""
        self.logger.info("Navigating to URL", extra={"url": url})
        start_time = asyncio.get_running_loop().time()

        await self._page.goto(url, wait_until="networkidle")

        elapsed_ms = (asyncio.get_running_loop().time() - start_time) * 1000
        log_performance_metric("page_navigation", elapsed_ms, context={"url": url})

    async def click(self, selector: str) -> None:
        self.logger.debug("Clicking", extra={"selector": selector})
        await self._page.click(selector)

    async def fill(self, selector: str, value: str) -> None:
        self.logger.debug("Filling", extra={"selector": selector, "length": len(value)})
        await self._page.fill(selector, value)

    async def select_option(self, selector: str, value: str) -> None:
        self.logger.debug("Selecting option", extra={"selector": selector})
        await self._page.select_option(selector, value)

    async def check(self, selector: str) -> None:
        await self._page.check(selector)

    async def uncheck(self, selector: str) -> None:
        await self._page.uncheck(selector)

    async def hover(self, selector: str) -> None:
        await self._page.hover(selector)

    async def focus(self, selector: str) -> None:
        await self._page.focus(selector)

    async def press_key(self, key: str) -> None:
        """Press a keyboard key."""
        self.logger.debug("Pressing key", extra={"key": key})
        await self._page.keyboard.press(key)

    async def scroll_into_view(self, selector: str) -> None:
        await self._page.locator(selector).scroll_into_view_if_needed()

    async def scroll_by(self, x: int, y: int) -> None:
        """Scroll the window by a number of pixels."""
        await self._page.evaluate("([x, y]) => window.scrollBy(x, y)", [x, y])

    async def wait(self, milliseconds: int) -> None:
        """Wait for specified duration."""
        self.logger.debug("Waiting", extra={"milliseconds": milliseconds})
        await self._page.wait_for_timeout(milliseconds)

    async def wait_for_network_idle(self, timeout_ms: int) -> None:
        await self._page.wait_for_load_state("networkidle", timeout=timeout_ms)

    async def is_visible(self, selector: str, timeout_ms: Optional[int] = None) -> bool:
        """
        Check whether the first element matching selector becomes visible.

        Waits up to the verification timeout for the element to appear;
        a timeout means "not visible".
        """
        timeout = self.verification_timeout_ms if timeout_ms is None else timeout_ms
        locator = self._page.locator(selector).first
        try:
            await locator.wait_for(state="visible", timeout=timeout)
        except PlaywrightTimeoutError:
            return False
        return await locator.is_visible()

    async def current_url(self) -> str:
        return self._page.url

    async def page_content(self) -> str:
        return await self._page.content()

    async def screenshot(self) -> bytes:
        """Take a screenshot and return as bytes."""
        self.logger.debug("Taking screenshot")
        return await self._page.screenshot(type="png", full_page=False)


class BrowserManager(SessionFactory):
    """Owns one browser process and hands out isolated story sessions."""

    def __init__(
        self,
        headless: Optional[bool] = None,
        viewport_width: Optional[int] = None,
        viewport_height: Optional[int] = None,
        timeout: Optional[int] = None,
    ) -> None:
        """
        Initialize the browser manager.

        Args:
            headless: Run browser in headless mode
            viewport_width: Session viewport width
            viewport_height: Session viewport height
            timeout: Default action timeout in milliseconds
        """
        settings = get_settings()
        self.headless = headless if headless is not None else settings.browser_headless
        self.viewport_width = viewport_width or settings.browser_viewport_width
        self.viewport_height = viewport_height or settings.browser_viewport_height
        self.timeout = timeout or settings.browser_timeout
        self.verification_timeout_ms = settings.verification_timeout_ms

        self.logger = get_logger("browser.manager")
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._launch_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    async def _get_browser(self) -> Browser:
        async with self._launch_lock:
            if self._playwright is None:
                self._playwright = await async_playwright().start()

            if self._browser is None:
                self.logger.info(
                    "Starting browser",
                    extra={
                        "headless": self.headless,
                        "viewport": f"{self.viewport_width}x{self.viewport_height}",
                    },
                )
                try:
                    self._browser = await self._playwright.chromium.launch(
                        headless=self.headless,
                        args=["--no-sandbox", "--disable-dev-shm-usage"],
                    )
                except Exception as e:
                    raise BrowserError(
                        f"Failed to launch browser: {e}", action="launch", cause=e
                    ) from e
        return self._browser

    @asynccontextmanager
    async def session(self) -> AsyncIterator[PlaywrightSession]:
        """Open an isolated context + page; always closed on exit."""
        browser = await self._get_browser()
        context: BrowserContext = await browser.new_context(
            viewport={"width": self.viewport_width, "height": self.viewport_height},
        )
        try:
            context.set_default_timeout(self.timeout)
            page = await context.new_page()
            yield PlaywrightSession(page, verification_timeout_ms=self.verification_timeout_ms)
        finally:
            await context.close()

    async def shutdown(self) -> None:
        """Close the browser process and stop Playwright."""
        async with self._launch_lock:
            if self._browser:
                await self._browser.close()
                self._browser = None

            if self._playwright:
                await self._playwright.stop()
                self._playwright = None

        self.logger.info("Browser stopped")

    async def __aenter__(self) -> "BrowserManager":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()
