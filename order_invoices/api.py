"""Order Invoice Downloader - Audit API

Read-only HTTP view of the download history and the batch queue, for
checking what has been captured without opening the interactive tool.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from .batch_queue import BatchQueue
from .config import RETAILERS, RetailerSite, settings
from .history import HistoryStore
from .models import (
    BatchStatus,
    HealthResponse,
    HistoryRecord,
    HistoryResponse,
    QueueResponse,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info("=" * 60)
    logger.info("Order Invoice Audit API starting...")
    logger.info(f"Receipts directory: {settings.receipts_path}")
    logger.info(f"Retailers: {', '.join(RETAILERS)}")
    logger.info("=" * 60)
    yield
    logger.info("Order Invoice Audit API stopped.")


app = FastAPI(
    title="Order Invoice Downloader",
    description="Read-only view of downloaded invoices and the batch queue",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET"],
    allow_headers=["*"],
)


def _get_site(retailer: str) -> RetailerSite:
    site = RETAILERS.get(retailer.lower())
    if site is None:
        raise HTTPException(status_code=404, detail=f"Unknown retailer: {retailer}")
    return site


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        receipts_dir=str(settings.receipts_path),
        debug=settings.debug,
    )


@app.get("/history/{retailer}", response_model=HistoryResponse)
async def get_history(retailer: str):
    """All download records for a retailer."""
    site = _get_site(retailer)
    store = HistoryStore(site, settings)
    if not store.history_file.exists():
        return HistoryResponse(retailer=site.slug, downloaded=0, invoices={})

    history = store.load()
    return HistoryResponse(
        retailer=site.slug,
        last_sync_date=history.last_sync_date,
        last_run_date=history.last_run_date,
        downloaded=len(history.downloaded_invoices),
        invoices=history.downloaded_invoices,
    )


@app.get("/history/{retailer}/{order_id}", response_model=HistoryRecord)
async def get_history_record(retailer: str, order_id: str):
    """Download record for one order."""
    site = _get_site(retailer)
    store = HistoryStore(site, settings)
    record = store.records().get(order_id) if store.history_file.exists() else None
    if record is None:
        raise HTTPException(status_code=404, detail=f"Order {order_id} has not been downloaded")
    return record


@app.get("/queue/{retailer}", response_model=QueueResponse)
async def get_queue(retailer: str):
    """Batch queue contents with counts by status."""
    site = _get_site(retailer)
    queue = BatchQueue(site, settings)
    queue.load()
    counts = queue.count_by_status()
    return QueueResponse(
        retailer=site.slug,
        total=queue.count(),
        pending=counts[BatchStatus.PENDING],
        completed=counts[BatchStatus.COMPLETED],
        failed=counts[BatchStatus.FAILED],
        invoices=queue.items(),
    )


def serve() -> None:
    """Run the audit API with uvicorn."""
    logging.basicConfig(
        level=logging.DEBUG if settings.debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )
    uvicorn.run(
        "order_invoices.api:app",
        host=settings.host,
        port=settings.port,
        reload=False
    )


if __name__ == "__main__":
    serve()
