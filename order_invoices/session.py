"""Retailer login handling.

The session is established interactively: if the stored browser profile is
not logged in, the operator signs in inside the browser window while we poll
for the order-history page to appear.
"""
import asyncio
import logging
from urllib.parse import urlparse

from playwright.async_api import Error as PlaywrightError

from .browser import BrowserSession
from .config import RetailerSite, Settings
from .errors import SessionError
from .rate_gate import RateGate

logger = logging.getLogger(__name__)

LISTING_READY_JS = """([path, selector]) =>
    window.location.href.includes(path) && !!document.querySelector(selector)
"""


class SessionController:
    """Makes sure the browser is signed in before listing or capture work."""

    def __init__(self, browser: BrowserSession, site: RetailerSite, settings: Settings, gate: RateGate):
        self.browser = browser
        self.site = site
        self.settings = settings
        self.gate = gate
        self._history_path = urlparse(site.order_history_url).path

    async def check_login_status(self, page) -> bool:
        """
        Check if the page shows the signed-in order history.

        Returns True if logged in, False if login is required.
        """
        current_url = page.url
        if self.site.is_signin_url(current_url) or self._history_path not in current_url:
            logger.info(f"Login required - page is at: {current_url}")
            return False

        orders_element = await page.query_selector(self.site.listing_selector)
        return orders_element is not None

    async def ensure_authenticated(self) -> None:
        """
        Validate the existing session or wait for a manual login.

        Raises SessionError once every attempt has failed.
        """
        page = self.browser.page
        attempts = self.settings.auth_attempts

        for attempt in range(1, attempts + 1):
            try:
                logger.info(f"Navigating to: {self.site.order_history_url}")
                await self.gate.schedule(lambda: page.goto(
                    self.site.order_history_url,
                    wait_until='networkidle',
                    timeout=self.settings.timeout_listing,
                ))

                if await self.check_login_status(page):
                    logger.info("Session valid, proceeding with existing login")
                    return

                logger.warning(f"Please log in to {self.site.name} in the browser window...")
                await page.wait_for_function(
                    LISTING_READY_JS,
                    arg=[self._history_path, self.site.listing_selector],
                    timeout=self.settings.timeout_login_wait,
                )
                logger.warning("Login successful!")
                return

            except PlaywrightError as e:
                logger.error(f"Authentication check failed (attempt {attempt}/{attempts}): {e}")
                if attempt < attempts:
                    await asyncio.sleep(self.settings.auth_retry_delay)

        raise SessionError(f"Failed to verify {self.site.name} login status")
