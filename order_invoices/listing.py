"""Order-history listing: page navigation, order extraction and bot-check handling."""
import asyncio
import logging
import random
from typing import Any

from .browser import BrowserSession
from .config import RetailerSite, Settings
from .models import DATE_NOT_FOUND, TOTAL_NOT_FOUND, ListingPage, OrderSummary
from .rate_gate import RateGate

logger = logging.getLogger(__name__)

# Runs in the page. Returns plain dicts; missing fields come back as null.
EXTRACT_ORDERS_JS = """(cardSelector) => {
    return Array.from(document.querySelectorAll(cardSelector)).map(card => {
        const idNode = card.querySelector('[data-order-id]');
        const detailsLink = card.querySelector('a[href*="order-details"]');
        const linkMatch = detailsLink?.getAttribute('href')?.match(/orderID=([^&]+)/);
        const dateNode = card.querySelector('.a-color-secondary.value, .value, [class*="order-date"]');
        const totalNode = card.querySelector('[class*="order-total"]');
        return {
            orderId: idNode?.getAttribute('data-order-id') || (linkMatch ? linkMatch[1] : null),
            orderDate: dateNode?.textContent?.trim() || null,
            total: totalNode?.textContent?.trim()?.replace(/\\s+/g, ' ')?.replace('Total ', '') || null,
            items: Array.from(card.querySelectorAll('.a-link-normal[href*="/gp/product/"]'))
                .map(item => item.textContent.trim())
                .filter(text => text && !text.includes('<img')),
        };
    });
}"""

BODY_TEXT_JS = "() => document.body ? document.body.textContent : ''"

RANDOM_SCROLL_JS = """() => window.scrollTo({
    top: Math.random() * document.body.scrollHeight,
    behavior: 'smooth'
})"""


def parse_order_cards(raw_cards: list[dict[str, Any]]) -> list[OrderSummary]:
    """
    Turn raw card data into OrderSummary values.

    Missing date/total fall back to placeholder text. Cards without any
    order id are dropped since there is nothing to download for them.
    """
    orders = []
    for card in raw_cards:
        order_id = card.get('orderId')
        if not order_id:
            logger.debug(f"Skipping order card without an order id: {card}")
            continue
        orders.append(OrderSummary(
            order_id=order_id,
            order_date=card.get('orderDate') or DATE_NOT_FOUND,
            total=card.get('total') or TOTAL_NOT_FOUND,
            items=[item for item in card.get('items') or [] if item],
        ))
    return orders


class ListingNavigator:
    """Loads listing pages and reads the order cards on them."""

    def __init__(self, browser: BrowserSession, site: RetailerSite, settings: Settings, gate: RateGate):
        self.browser = browser
        self.site = site
        self.settings = settings
        self.gate = gate

    @property
    def page_size(self) -> int:
        return self.settings.page_size

    async def fetch_page(self, page_index: int) -> ListingPage:
        """Navigate to a zero-based listing page and extract its orders."""
        page = self.browser.page
        url = self.site.listing_url(page_index * self.page_size)
        logger.debug(f"Loading listing page {page_index + 1}: {url}")

        await self.gate.schedule(lambda: page.goto(
            url,
            wait_until='networkidle',
            timeout=self.settings.timeout_listing,
        ))

        raw_cards = await page.evaluate(EXTRACT_ORDERS_JS, self.site.order_card_selector) or []
        orders = parse_order_cards(raw_cards)
        last_order_date = orders[-1].order_date if orders else None
        logger.info(f"Listing page {page_index + 1}: {len(orders)} orders")

        return ListingPage(
            page_index=page_index,
            orders=orders,
            card_count=len(raw_cards),
            last_order_date=last_order_date,
        )

    async def is_blocked(self) -> bool:
        """Check whether the current page is a bot-check/CAPTCHA interstitial."""
        body_text = await self.browser.page.evaluate(BODY_TEXT_JS) or ''
        blocked = any(marker in body_text for marker in self.site.challenge_markers)
        if blocked:
            logger.warning("Challenge page detected")
        return blocked

    async def simulate_human_behavior(self) -> None:
        """Scroll somewhere random, then pause for a random while."""
        page = self.browser.page
        await self.gate.schedule(lambda: page.evaluate(RANDOM_SCROLL_JS))
        delay = random.uniform(self.settings.human_delay_min, self.settings.human_delay_max)
        logger.debug(f"Human delay after scroll: {delay:.2f}s")
        await asyncio.sleep(delay)
