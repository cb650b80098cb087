"""Tests for invoice capture and its retry logic."""
import asyncio
import pytest
from unittest.mock import MagicMock

from playwright.async_api import Error as PlaywrightError


@pytest.fixture
def engine(mock_browser, site, test_settings, gate, history, mock_page):
    from order_invoices.capture import CaptureEngine

    mock_page.url = site.invoice_url("111-222")
    return CaptureEngine(mock_browser, site, test_settings, gate, history)


class TestCaptureSuccess:
    """Test the happy path."""

    @pytest.mark.asyncio
    async def test_saves_pdf_and_records_history(self, engine, mock_page, history, site):
        """Test that a capture writes the PDF and a history record."""
        file_name = await engine.capture("111-222", "March 1, 2024")

        assert file_name.endswith("_amazon_111-222.pdf")
        assert (history.receipts_dir / file_name).read_bytes() == b"%PDF-1.4 test"
        assert history.records()["111-222"].order_date == "March 1, 2024"

        mock_page.goto.assert_awaited_once()
        assert mock_page.goto.await_args.args[0] == site.invoice_url("111-222")
        assert mock_page.goto.await_args.kwargs["timeout"] == 45000

    @pytest.mark.asyncio
    async def test_pdf_render_options(self, engine, mock_page):
        """Test the page is printed at half scale on A4."""
        await engine.capture("111-222")

        mock_page.pdf.assert_awaited_once_with(scale=0.5, format='A4', print_background=True)

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failure(self, engine, mock_page, history):
        """Test that a later attempt can still succeed."""
        mock_page.goto.side_effect = [PlaywrightError("net::ERR_CONNECTION_RESET"), None]

        file_name = await engine.capture("111-222")

        assert mock_page.goto.await_count == 2
        assert history.is_recorded("111-222")
        assert file_name


class TestCaptureRetries:
    """Test bounded retries."""

    @pytest.mark.asyncio
    async def test_four_attempts_when_navigation_always_fails(self, engine, mock_page, history):
        """Test max_retries extra attempts before giving up."""
        from order_invoices.errors import CaptureError

        mock_page.goto.side_effect = PlaywrightError("Timeout 45000ms exceeded")

        with pytest.raises(CaptureError) as exc_info:
            await engine.capture("111-222")

        assert mock_page.goto.await_count == 4
        assert exc_info.value.attempts == 4
        assert exc_info.value.order_id == "111-222"
        mock_page.pdf.assert_not_awaited()
        assert not history.is_recorded("111-222")
        assert not list(history.receipts_dir.glob("*.pdf"))

    @pytest.mark.asyncio
    async def test_wrong_page_is_a_failure(self, engine, mock_page, history):
        """Test that a redirect away from the invoice page is not success."""
        from order_invoices.errors import CaptureError, NavigationError

        mock_page.url = "https://www.amazon.com/ap/signin?openid.return_to=..."

        with pytest.raises(CaptureError) as exc_info:
            await engine.capture("111-222")

        assert isinstance(exc_info.value.__cause__, NavigationError)
        assert "Invalid navigation" in exc_info.value.reason
        mock_page.pdf.assert_not_awaited()
        assert not history.is_recorded("111-222")

    @pytest.mark.asyncio
    async def test_navigation_hang_hits_outer_timeout(self, engine, mock_page, test_settings):
        """Test the outer guard when goto never returns."""
        from order_invoices.errors import CaptureError

        test_settings.timeout_navigation_guard = 10
        test_settings.max_retries = 1

        async def hang(*args, **kwargs):
            await asyncio.sleep(5)

        mock_page.goto.side_effect = hang

        with pytest.raises(CaptureError) as exc_info:
            await engine.capture("111-222")

        assert exc_info.value.reason == "Navigation timeout"
        assert mock_page.goto.await_count == 2

    @pytest.mark.asyncio
    async def test_render_timeout_is_retried(self, engine, mock_page, test_settings):
        """Test that a slow PDF render counts as a failed attempt."""
        from order_invoices.errors import CaptureError, RenderError

        test_settings.timeout_render = 10

        async def slow_pdf(*args, **kwargs):
            await asyncio.sleep(5)

        mock_page.pdf.side_effect = slow_pdf

        with pytest.raises(CaptureError) as exc_info:
            await engine.capture("111-222")

        assert isinstance(exc_info.value.__cause__, RenderError)
        assert mock_page.pdf.await_count == 4

    @pytest.mark.asyncio
    async def test_render_error_is_retried(self, engine, mock_page, history):
        """Test that a render error is retried and can recover."""
        mock_page.pdf.side_effect = [PlaywrightError("Printing failed"), b"%PDF-1.4 second"]

        file_name = await engine.capture("111-222")

        assert mock_page.goto.await_count == 2
        assert (history.receipts_dir / file_name).read_bytes() == b"%PDF-1.4 second"

    @pytest.mark.asyncio
    async def test_attempt_argument_reduces_remaining_attempts(self, engine, mock_page):
        """Test that starting at attempt 2 leaves two attempts."""
        from order_invoices.errors import CaptureError

        mock_page.goto.side_effect = PlaywrightError("boom")

        with pytest.raises(CaptureError):
            await engine.capture("111-222", attempt=2)

        assert mock_page.goto.await_count == 2


class TestCaptureStorage:
    """Test storage failures."""

    @pytest.mark.asyncio
    async def test_storage_error_is_not_retried(self, mock_browser, mock_page, site, test_settings, gate):
        """Test that a history write failure propagates immediately."""
        from order_invoices.capture import CaptureEngine

        history = MagicMock()
        history.save_invoice.side_effect = OSError("disk full")
        mock_page.url = site.invoice_url("111-222")
        engine = CaptureEngine(mock_browser, site, test_settings, gate, history)

        with pytest.raises(OSError, match="disk full"):
            await engine.capture("111-222")

        assert mock_page.goto.await_count == 1
