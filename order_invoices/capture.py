"""Invoice capture: open an order's printable invoice page and save it as PDF."""
import asyncio
import logging
import time
from typing import Optional

from playwright.async_api import Error as PlaywrightError

from .browser import BrowserSession
from .config import RetailerSite, Settings
from .errors import CaptureError, NavigationError, RenderError
from .history import HistoryStore
from .rate_gate import RateGate

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (NavigationError, RenderError, PlaywrightError, asyncio.TimeoutError)


class CaptureEngine:
    """Renders invoice pages to PDF with bounded retries."""

    def __init__(
        self,
        browser: BrowserSession,
        site: RetailerSite,
        settings: Settings,
        gate: RateGate,
        history: HistoryStore,
    ):
        self.browser = browser
        self.site = site
        self.settings = settings
        self.gate = gate
        self.history = history

    async def _navigate(self, page, url: str) -> None:
        """
        Open the invoice page.

        The outer wait_for only stops us waiting; the browser may still be
        busy with the old navigation when the next attempt starts.
        """
        guard = self.settings.timeout_navigation_guard / 1000
        try:
            await self.gate.schedule(lambda: asyncio.wait_for(
                page.goto(url, wait_until='networkidle', timeout=self.settings.timeout_navigation),
                timeout=guard,
            ))
        except asyncio.TimeoutError as e:
            raise NavigationError("Navigation timeout") from e

        if self.site.invoice_path_marker not in page.url:
            raise NavigationError(f"Invalid navigation: {page.url}")

    async def _render(self, page) -> bytes:
        timeout = self.settings.timeout_render / 1000
        try:
            return await self.gate.schedule(lambda: asyncio.wait_for(
                page.pdf(scale=0.5, format='A4', print_background=True),
                timeout=timeout,
            ))
        except asyncio.TimeoutError as e:
            raise RenderError("PDF render timeout") from e
        except PlaywrightError as e:
            raise RenderError(f"PDF render failed: {e}") from e

    async def capture(self, order_id: str, order_date: Optional[str] = None, attempt: int = 0) -> str:
        """
        Capture one invoice and record it in the history.

        Args:
            order_id: Retailer order identifier
            order_date: Order date as shown on the listing (stored in history)
            attempt: Number of attempts already used

        Returns:
            File name of the saved PDF

        Raises:
            CaptureError: once max_retries extra attempts have failed
        """
        page = self.browser.page
        url = self.site.invoice_url(order_id)
        total_attempts = self.settings.max_retries + 1

        while True:
            started = time.monotonic()
            logger.debug(f"Starting PDF capture for {order_id} (attempt {attempt + 1}/{total_attempts})")
            try:
                await self._navigate(page, url)
                await asyncio.sleep(self.settings.settle_delay)
                pdf = await self._render(page)
                break
            except RETRYABLE_ERRORS as e:
                reason = str(e) or type(e).__name__
                duration = time.monotonic() - started
                logger.error(
                    f"Invoice capture failed for {order_id} "
                    f"(attempt {attempt + 1}/{total_attempts}, {duration:.1f}s): {reason}"
                )
                if attempt >= self.settings.max_retries:
                    raise CaptureError(order_id, attempt + 1, reason) from e
                logger.warning(f"Retrying download of {order_id} ({attempt + 2}/{total_attempts})...")
                await asyncio.sleep(self.settings.retry_backoff)
                attempt += 1

        logger.debug(
            f"PDF captured for {order_id}: {len(pdf)} bytes in {time.monotonic() - started:.1f}s"
        )
        # Storage failures are not retried: they propagate to the caller
        return self.history.save_invoice(order_id, pdf, order_date)
