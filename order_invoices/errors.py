"""Order Invoice Downloader - Exceptions"""


class InvoiceDownloaderError(Exception):
    """Base class for all downloader errors."""


class SessionError(InvoiceDownloaderError):
    """Authentication could not be established. Fatal for the run."""


class NavigationError(InvoiceDownloaderError):
    """Navigation timed out or landed on the wrong page."""


class RenderError(InvoiceDownloaderError):
    """PDF rendering timed out or failed."""


class CaptureError(InvoiceDownloaderError):
    """All capture attempts for an order were exhausted."""

    def __init__(self, order_id: str, attempts: int, message: str):
        super().__init__(f"Capture of order {order_id} failed after {attempts} attempts: {message}")
        self.order_id = order_id
        self.attempts = attempts
        self.reason = message
