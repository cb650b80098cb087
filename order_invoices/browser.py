"""Browser session: one persistent Chromium context with a single page.

Every navigation, evaluation and PDF render goes through the one page held
here, so page work is naturally serialized.
"""
import logging
from pathlib import Path

from playwright.async_api import async_playwright

from .config import Settings

logger = logging.getLogger(__name__)


class BrowserSession:
    """Owns the Playwright driver, the persistent context and its page."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._playwright = None
        self._context = None
        self._page = None

    @property
    def is_running(self) -> bool:
        return self._context is not None

    @property
    def page(self):
        if self._page is None:
            raise RuntimeError("Browser session not started")
        return self._page

    async def start(self):
        """
        Launch Chromium with a persistent profile and open the working page.

        The profile directory keeps the retailer login across restarts.
        Chromium is required because only it can print pages to PDF.
        """
        if self._page is not None:
            return self._page

        self.settings.ensure_directories()
        profile_path = Path(self.settings.profile_dir).absolute()
        logger.info(f"Launching browser with persistent profile at: {profile_path}")

        self._playwright = await async_playwright().start()
        self._context = await self._playwright.chromium.launch_persistent_context(
            str(profile_path),
            headless=self.settings.headless,
            no_viewport=True,
            args=['--start-maximized'],
        )

        # A persistent context opens with a blank tab; reuse it
        pages = self._context.pages
        self._page = pages[0] if pages else await self._context.new_page()

        if self.settings.debug:
            self._attach_diagnostics(self._page)

        return self._page

    def _attach_diagnostics(self, page) -> None:
        """Log raw browser events. Only used when DEBUG is set."""
        page.on('console', lambda msg: logger.debug(f"Browser console [{msg.type}]: {msg.text}"))
        page.on('request', lambda request: logger.debug(
            f"Navigation request: {request.method} {request.url}"
        ))
        page.on('response', lambda response: logger.debug(
            f"Navigation response: {response.status} {response.url}"
        ))

    async def close(self) -> None:
        """Close the context and stop the driver."""
        if self._context is not None:
            try:
                await self._context.close()
            except Exception as e:
                logger.warning(f"Error closing browser: {e}")
        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.warning(f"Error stopping Playwright: {e}")
        self._playwright = None
        self._context = None
        self._page = None

