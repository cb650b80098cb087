"""Durable queue of orders selected for batch download."""
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from pydantic import ValidationError

from .config import RetailerSite, Settings
from .models import BatchItem, BatchQueueFile, BatchStatus, OrderSummary

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BatchQueue:
    """
    Ordered list of selected invoices, mirrored to a JSON file.

    Every mutating call updates memory, writes the file, and only then
    returns, so the file never lags behind a change the caller has seen.
    """

    def __init__(self, site: RetailerSite, settings: Settings):
        self.site = site
        self.queue_file: Path = settings.batch_queue_file(site)
        self._items: list[BatchItem] = []

    def load(self) -> None:
        """Read persisted items. A missing or unreadable file yields an empty queue."""
        try:
            with open(self.queue_file, 'r', encoding='utf-8') as f:
                data = BatchQueueFile.model_validate(json.load(f))
            self._items = list(data.invoices)
            logger.info(f"Loaded {len(self._items)} queued invoices from {self.queue_file}")
        except FileNotFoundError:
            self._items = []
        except (OSError, ValueError, ValidationError) as e:
            logger.error(f"Could not read batch queue {self.queue_file}, starting empty: {e}")
            self._items = []

    def save(self) -> None:
        """Persist the whole queue with a fresh lastUpdated stamp."""
        self.queue_file.parent.mkdir(parents=True, exist_ok=True)
        payload = BatchQueueFile(last_updated=_now(), invoices=self._items)
        tmp_file = self.queue_file.with_suffix('.json.tmp')
        with open(tmp_file, 'w', encoding='utf-8') as f:
            f.write(payload.model_dump_json(by_alias=True, indent=2))
        os.replace(tmp_file, self.queue_file)

    def add(self, orders: Iterable[OrderSummary]) -> int:
        """Queue orders as pending. Orders already pending are skipped."""
        queued = {item.order_id for item in self._items if item.status == BatchStatus.PENDING}
        added = 0
        for order in orders:
            if order.order_id in queued:
                logger.info(f"Order {order.order_id} is already queued, skipping")
                continue
            self._items.append(BatchItem(
                order_id=order.order_id,
                description=order.label,
                date=order.order_date,
                total=order.total,
                url=self.site.invoice_url(order.order_id),
                selected_at=_now(),
            ))
            queued.add(order.order_id)
            added += 1
        if added:
            self.save()
        return added

    def items(self) -> list[BatchItem]:
        return list(self._items)

    def pending(self) -> list[BatchItem]:
        return [item for item in self._items if item.status == BatchStatus.PENDING]

    def count(self) -> int:
        return len(self._items)

    def count_by_status(self) -> dict[BatchStatus, int]:
        counts = {status: 0 for status in BatchStatus}
        for item in self._items:
            counts[item.status] += 1
        return counts

    def mark_completed(self, item: BatchItem) -> None:
        item.status = BatchStatus.COMPLETED
        item.processed_at = _now()
        item.error = None
        self.save()

    def mark_failed(self, item: BatchItem, error: str) -> None:
        item.status = BatchStatus.FAILED
        item.processed_at = _now()
        item.error = error
        self.save()

    def all_completed(self) -> bool:
        """True when nothing is left pending or failed."""
        return all(item.status == BatchStatus.COMPLETED for item in self._items)

    def clear(self) -> None:
        """Drop every item and remove the queue file."""
        self._items = []
        try:
            self.queue_file.unlink()
        except FileNotFoundError:
            pass
        logger.info("Batch queue cleared")
