"""Pytest configuration and shared fixtures."""
import pytest
import sys
import os
import tempfile
from unittest.mock import MagicMock, AsyncMock

# Ensure the package is importable from the repo root
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Keep the module-level settings away from the real ~/receipts
os.environ.setdefault('RECEIPTS_DIR', tempfile.mkdtemp(prefix='receipts-test-'))
os.environ.setdefault('PROFILE_DIR', os.path.join(os.environ['RECEIPTS_DIR'], 'profile'))


@pytest.fixture
def test_settings(tmp_path):
    """Settings rooted in a temp dir with every delay switched off."""
    from order_invoices.config import Settings

    return Settings(
        receipts_dir=str(tmp_path / "receipts"),
        profile_dir=str(tmp_path / "profile"),
        retry_backoff=0,
        settle_delay=0,
        auth_retry_delay=0,
        rate_min_interval_ms=0,
        human_delay_min=0,
        human_delay_max=0,
        error_pause=0,
    )


@pytest.fixture
def site():
    from order_invoices.config import AMAZON
    return AMAZON


@pytest.fixture
def gate():
    from order_invoices.rate_gate import RateGate
    return RateGate(0)


@pytest.fixture
def history(site, test_settings):
    from order_invoices.history import HistoryStore

    store = HistoryStore(site, test_settings)
    store.initialize()
    return store


@pytest.fixture
def queue(site, test_settings):
    from order_invoices.batch_queue import BatchQueue

    batch_queue = BatchQueue(site, test_settings)
    batch_queue.load()
    return batch_queue


@pytest.fixture
def mock_page():
    """Mock Playwright page."""
    page = MagicMock()
    page.url = "about:blank"
    page.goto = AsyncMock()
    page.evaluate = AsyncMock()
    page.query_selector = AsyncMock(return_value=None)
    page.wait_for_function = AsyncMock()
    page.pdf = AsyncMock(return_value=b"%PDF-1.4 test")
    return page


@pytest.fixture
def mock_browser(mock_page):
    """Mock BrowserSession exposing the mock page."""
    browser = MagicMock()
    browser.page = mock_page
    browser.close = AsyncMock()
    return browser


class FakePrompter:
    """Scripted stand-in for ConsolePrompter."""

    def __init__(self, choices=None, selections=None, texts=None, confirms=None):
        self.choices = list(choices or [])
        self.selections = list(selections or [])
        self.texts = list(texts or [])
        self.confirms = list(confirms or [])
        self.messages = []
        self.confirm_calls = 0
        self.shown = []

    def info(self, message):
        self.messages.append(message)

    def show_listing(self, listing, mode, queued):
        self.shown.append((listing.page_index, mode, queued))

    async def choose(self, message, choices):
        return self.choices.pop(0)

    async def checkbox(self, message, choices):
        wanted = self.selections.pop(0)
        return [choice.value for choice in choices if choice.value.order_id in wanted]

    async def text(self, message, validate=None, transform=None):
        while True:
            raw = self.texts.pop(0)
            if validate is None or validate(raw) is True:
                return transform(raw) if transform else raw

    async def confirm(self, message, default=True):
        self.confirm_calls += 1
        return self.confirms.pop(0) if self.confirms else default


@pytest.fixture
def prompter():
    return FakePrompter()


def make_order(order_id, items=None, order_date="January 5, 2024", total="$19.99"):
    from order_invoices.models import OrderSummary

    return OrderSummary(
        order_id=order_id,
        order_date=order_date,
        total=total,
        items=items if items is not None else [f"Item for {order_id}"],
    )


@pytest.fixture
def order_factory():
    return make_order
