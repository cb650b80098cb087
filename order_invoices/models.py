"""Order Invoice Downloader - Pydantic Models"""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime
from enum import Enum


DATE_NOT_FOUND = "Date not found"
TOTAL_NOT_FOUND = "Total not found"
ITEM_NOT_FOUND = "Item not found"


class BatchStatus(str, Enum):
    """Processing status of a queued invoice."""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Mode(str, Enum):
    """Whether selections are captured right away or queued."""
    IMMEDIATE = "immediate"
    BATCH = "batch"


class _CamelModel(BaseModel):
    """Persisted models use camelCase keys on disk."""
    model_config = ConfigDict(populate_by_name=True)


class OrderSummary(BaseModel):
    """One order card scraped from a listing page."""
    order_id: str
    order_date: str = DATE_NOT_FOUND
    total: str = TOTAL_NOT_FOUND
    items: list[str] = Field(default_factory=list)

    @property
    def label(self) -> str:
        return self.items[0] if self.items else ITEM_NOT_FOUND


class ListingPage(BaseModel):
    """Orders visible on one listing page."""
    page_index: int
    orders: list[OrderSummary] = Field(default_factory=list)
    card_count: int = 0
    last_order_date: Optional[str] = None


class BatchItem(_CamelModel):
    """A selected order waiting in (or already processed from) the batch queue."""
    order_id: str = Field(..., alias="orderId")
    description: str
    date: str
    total: str
    url: str
    selected_at: datetime = Field(..., alias="selectedAt")
    status: BatchStatus = BatchStatus.PENDING
    processed_at: Optional[datetime] = Field(None, alias="processedAt")
    error: Optional[str] = None


class BatchQueueFile(_CamelModel):
    """On-disk layout of the batch queue."""
    last_updated: Optional[datetime] = Field(None, alias="lastUpdated")
    invoices: list[BatchItem] = Field(default_factory=list)


class HistoryRecord(_CamelModel):
    """Download record for one order."""
    file_name: str = Field(..., alias="fileName")
    download_date: str = Field(..., alias="downloadDate")
    order_date: Optional[str] = Field(None, alias="orderDate")


class HistoryFile(_CamelModel):
    """On-disk layout of the download history."""
    last_sync_date: Optional[str] = Field(None, alias="lastSyncDate")
    downloaded_invoices: dict[str, HistoryRecord] = Field(default_factory=dict, alias="downloadedInvoices")
    last_run_date: Optional[str] = Field(None, alias="lastRunDate")


class CaptureOutcome(BaseModel):
    """Result of capturing one selected order in immediate mode."""
    order_id: str
    success: bool
    file_name: Optional[str] = None
    error: Optional[str] = None


class ProcessSummary(BaseModel):
    """Result of draining the batch queue once."""
    attempted: int = 0
    completed: int = 0
    failed: int = 0
    halted: bool = False  # Operator declined to continue after a failure
    cleared: bool = False  # Queue was removed because everything completed


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str = "1.0.0"
    receipts_dir: str
    debug: bool = False


class QueueResponse(BaseModel):
    """Batch queue contents and counts by status."""
    retailer: str
    total: int
    pending: int
    completed: int
    failed: int
    invoices: list[BatchItem]


class HistoryResponse(BaseModel):
    """Download history for one retailer."""
    retailer: str
    last_sync_date: Optional[str] = None
    last_run_date: Optional[str] = None
    downloaded: int
    invoices: dict[str, HistoryRecord]
