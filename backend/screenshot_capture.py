"""Screenshot capture for HTML/CSS/JS documents.

One headless Chromium process is launched lazily and shared by every render;
each render gets its own page, which is always closed again.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

from playwright.async_api import (
    Browser,
    ConsoleMessage,
    Error as PlaywrightError,
    Page,
    Playwright,
    async_playwright,
)

from config import settings

logger = logging.getLogger(__name__)

# Prefix the document wrapper uses when reporting a caught script error
SCRIPT_ERROR_MARKER = "[render] JS execution error:"

CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",  # small /dev/shm in Docker
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
    "--disable-software-rasterizer",
    "--disable-extensions",
]


@dataclass
class ScreenshotOptions:
    """Options for screenshot capture."""
    width: int = 1280
    height: int = 720
    device_scale_factor: float = 1.0
    timeout_ms: int = 30000  # navigation and screenshot bound
    settle_ms: int = 500  # extra wait for animations / scripts after DOM ready
    full_page: bool = False  # viewport only, so both images share one pixel grid

    @classmethod
    def from_settings(cls) -> "ScreenshotOptions":
        return cls(
            width=settings.viewport_width,
            height=settings.viewport_height,
            timeout_ms=settings.render_timeout_ms,
            settle_ms=settings.render_settle_ms,
        )


@dataclass
class RenderedPage:
    image: bytes
    script_errors: list[str] = field(default_factory=list)


class ScreenshotCapture:
    """Owns the shared browser and hands out short-lived pages."""

    def __init__(self, executable_path: Optional[str] = None):
        self.executable_path = executable_path or settings.chromium_executable_path
        self._playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self._lock = asyncio.Lock()

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    @property
    def started(self) -> bool:
        return self.browser is not None

    async def start(self) -> Browser:
        """Launch the browser once; concurrent callers wait for the same launch.

        A browser that has disconnected (crashed or was closed underneath us)
        is discarded and a fresh one is launched.
        """
        async with self._lock:
            if self.browser is not None and not self.browser.is_connected():
                logger.warning("Headless Chromium disconnected; relaunching")
                await self._discard()
            if self.browser is None:
                logger.info("Launching headless Chromium")
                self._playwright = await async_playwright().start()
                try:
                    self.browser = await self._playwright.chromium.launch(
                        headless=True,
                        executable_path=self.executable_path or None,
                        args=CHROMIUM_ARGS,
                        timeout=settings.render_timeout_ms,
                    )
                except Exception:
                    await self._playwright.stop()
                    self._playwright = None
                    raise
            return self.browser

    async def _discard(self):
        self.browser = None
        if self._playwright:
            try:
                await self._playwright.stop()
            except PlaywrightError as e:
                logger.warning("Error stopping Playwright after disconnect: %s", e)
            self._playwright = None

    async def close(self):
        """Shut the browser down. Safe to call more than once."""
        async with self._lock:
            if self.browser:
                await self.browser.close()
                self.browser = None
            if self._playwright:
                await self._playwright.stop()
                self._playwright = None
                logger.info("Headless Chromium stopped")

    @asynccontextmanager
    async def page(self, options: ScreenshotOptions) -> AsyncIterator[Page]:
        """Acquire a fresh page; it is closed on every exit path."""
        browser = await self.start()
        page = await browser.new_page(
            viewport={"width": options.width, "height": options.height},
            device_scale_factor=options.device_scale_factor,
        )
        try:
            yield page
        finally:
            await page.close()

    async def render(
        self,
        html_content: str,
        options: Optional[ScreenshotOptions] = None,
    ) -> RenderedPage:
        """
        Render a complete HTML document and capture a PNG screenshot.

        Args:
            html_content: Complete HTML string (can include <style> and <script> tags)
            options: Screenshot options (viewport, timeouts)

        Returns:
            RenderedPage with the PNG bytes and any script errors the page reported

        Raises:
            playwright.async_api.TimeoutError: navigation or capture exceeded
                ``options.timeout_ms``
        """
        options = options or ScreenshotOptions.from_settings()
        script_errors: list[str] = []

        def on_console(message: ConsoleMessage):
            if message.type == "error" and message.text.startswith(SCRIPT_ERROR_MARKER):
                script_errors.append(message.text[len(SCRIPT_ERROR_MARKER):].strip())

        def on_page_error(error: PlaywrightError):
            script_errors.append(str(error))

        async with self.page(options) as page:
            page.on("console", on_console)
            page.on("pageerror", on_page_error)
            await page.set_content(
                html_content,
                wait_until="domcontentloaded",
                timeout=options.timeout_ms,
            )
            await asyncio.sleep(options.settle_ms / 1000)
            screenshot_bytes = await page.screenshot(
                type="png",
                full_page=options.full_page,
                timeout=options.timeout_ms,
            )

        if script_errors:
            logger.warning("Page reported %d script error(s)", len(script_errors))
        return RenderedPage(image=screenshot_bytes, script_errors=script_errors)
