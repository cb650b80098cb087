"""Order Invoice Downloader - Configuration"""
from pydantic_settings import BaseSettings
from pydantic import BaseModel, field_validator
from pathlib import Path
from urllib.parse import urlencode


class RetailerSite(BaseModel):
    """URLs and page markers for one retailer storefront."""
    name: str
    slug: str
    order_history_url: str
    invoice_print_url: str
    invoice_path_marker: str  # Substring the invoice page URL must contain
    signin_markers: list[str]
    listing_selector: str  # Any match means we're looking at the order listing
    order_card_selector: str
    challenge_markers: list[str]

    def listing_url(self, start_index: int) -> str:
        """Get the order-history URL starting at the given result offset."""
        return f"{self.order_history_url}?{urlencode({'startIndex': start_index})}"

    def invoice_url(self, order_id: str) -> str:
        """Get the printable invoice URL for an order."""
        return f"{self.invoice_print_url}?{urlencode({'orderID': order_id})}"

    def is_signin_url(self, url: str) -> bool:
        return any(marker in url for marker in self.signin_markers)


AMAZON = RetailerSite(
    name="Amazon",
    slug="amazon",
    order_history_url="https://www.amazon.com/gp/your-account/order-history",
    invoice_print_url="https://www.amazon.com/gp/css/summary/print.html",
    invoice_path_marker="summary/print.html",
    signin_markers=["/ap/signin"],
    listing_selector='.order, [class*="order-card"], #orderTypeMenuContainer',
    order_card_selector='[class*="order-card"]',
    challenge_markers=[
        "Type the characters you see in this image",
        "Sorry, we just need to make sure you're not a robot",
    ],
)

RETAILERS: dict[str, RetailerSite] = {AMAZON.slug: AMAZON}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Verbose diagnostics and raw browser event logging
    debug: bool = False

    # Receipts root; each retailer gets its own sub-directory
    receipts_dir: str = "~/receipts"

    # Browser profile for persistent login
    profile_dir: str = "./.browser-profile"

    # Browser settings
    headless: bool = False  # Headed mode required for manual login

    # Listing
    page_size: int = 10

    # Timeouts (milliseconds)
    timeout_navigation: int = 45000  # Browser-side invoice navigation timeout
    timeout_navigation_guard: int = 50000  # Outer wait around the navigation call
    timeout_render: int = 30000  # PDF render
    timeout_listing: int = 30000  # Listing and auth page loads
    timeout_login_wait: int = 300000  # 5 minutes to wait for manual login

    # Capture retry logic
    max_retries: int = 3  # Additional attempts after the first
    retry_backoff: float = 5.0  # seconds between capture attempts
    settle_delay: float = 2.0  # seconds between navigation and render

    # Authentication retry logic
    auth_attempts: int = 3
    auth_retry_delay: float = 2.0

    # Rate gate: minimum spacing between remote-facing operation starts
    rate_min_interval_ms: int = 1000

    # Human-like pause used when a challenge page shows up (seconds)
    human_delay_min: float = 1.0
    human_delay_max: float = 3.0

    # Pause before re-rendering the menu after an unexpected error (seconds)
    error_pause: float = 3.0

    # Audit API server settings
    host: str = "127.0.0.1"
    port: int = 8000

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @field_validator('page_size')
    @classmethod
    def page_size_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("PAGE_SIZE must be at least 1")
        return v

    @field_validator('human_delay_max')
    @classmethod
    def human_delay_range(cls, v: float, info) -> float:
        low = info.data.get('human_delay_min', 0)
        if v < low:
            raise ValueError("HUMAN_DELAY_MAX must not be lower than HUMAN_DELAY_MIN")
        return v

    @property
    def receipts_path(self) -> Path:
        return Path(self.receipts_dir).expanduser()

    @property
    def log_dir(self) -> Path:
        return self.receipts_path / "logs"

    def retailer_dir(self, site: RetailerSite) -> Path:
        """Get the per-retailer directory holding history, queue and invoices."""
        return self.receipts_path / site.slug

    def history_file(self, site: RetailerSite) -> Path:
        return self.retailer_dir(site) / "history.json"

    def batch_queue_file(self, site: RetailerSite) -> Path:
        return self.retailer_dir(site) / "batch-queue.json"

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        for dir_path in [self.receipts_path, self.log_dir, Path(self.profile_dir)]:
            dir_path.mkdir(parents=True, exist_ok=True)


settings = Settings()
