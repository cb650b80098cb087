"""Download history: which orders already have an invoice on disk.

The history file is the only record of past downloads, so nothing here
swallows I/O errors. A history that cannot be read or written must stop
the run rather than risk downloading the same invoices again.
"""
import json
import logging
import os
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional

from .config import RetailerSite, Settings
from .models import HistoryFile, HistoryRecord

logger = logging.getLogger(__name__)


class HistoryStore:
    """JSON-backed map of order id to download record for one retailer."""

    def __init__(self, site: RetailerSite, settings: Settings):
        self.site = site
        self.receipts_dir: Path = settings.retailer_dir(site)
        self.history_file: Path = settings.history_file(site)

    def initialize(self) -> None:
        """Create the retailer directory and an empty history if none exists."""
        self.receipts_dir.mkdir(parents=True, exist_ok=True)
        if not self.history_file.exists():
            logger.info(f"Creating empty history at {self.history_file}")
            self._write(HistoryFile())

    def _read(self) -> HistoryFile:
        with open(self.history_file, 'r', encoding='utf-8') as f:
            return HistoryFile.model_validate(json.load(f))

    def _write(self, history: HistoryFile) -> None:
        payload = history.model_dump(mode='json', by_alias=True)
        tmp_file = self.history_file.with_suffix('.json.tmp')
        with open(tmp_file, 'w', encoding='utf-8') as f:
            json.dump(payload, f, indent=2)
        os.replace(tmp_file, self.history_file)

    def load(self) -> HistoryFile:
        """Read the full history file."""
        return self._read()

    def records(self) -> dict[str, HistoryRecord]:
        return self._read().downloaded_invoices

    def record(
        self,
        order_id: str,
        file_name: str,
        download_date: str,
        order_date: Optional[str] = None,
    ) -> None:
        """Upsert the record for an order, keeping every other entry."""
        history = self._read()
        history.downloaded_invoices[order_id] = HistoryRecord(
            file_name=file_name,
            download_date=download_date,
            order_date=order_date,
        )
        self._write(history)
        logger.debug(f"Recorded {order_id} -> {file_name}")

    def is_recorded(self, order_id: str) -> bool:
        return order_id in self._read().downloaded_invoices

    def invoice_file_name(self, order_id: str, on: Optional[date] = None) -> str:
        """Artifact name: <ISO-date>_<retailer>_<orderId>.pdf"""
        day = (on or datetime.now(timezone.utc).date()).isoformat()
        return f"{day}_{self.site.slug}_{order_id}.pdf"

    def save_invoice(self, order_id: str, data: bytes, order_date: Optional[str] = None) -> str:
        """
        Write the invoice PDF, then record it. Returns the file name.

        If the history cannot be updated the PDF is removed again, so a file
        on disk always has a history entry.
        """
        today = datetime.now(timezone.utc).date()
        file_name = self.invoice_file_name(order_id, today)
        filepath = self.receipts_dir / file_name

        with open(filepath, 'wb') as f:
            f.write(data)
        logger.info(f"Invoice saved: {filepath} ({len(data)} bytes)")

        try:
            self.record(order_id, file_name, today.isoformat(), order_date)
        except (OSError, ValueError):
            filepath.unlink(missing_ok=True)
            raise
        return file_name

    def mark_run(self, synced: bool = False) -> None:
        """Stamp the run date, and the sync date when invoices were fetched."""
        history = self._read()
        today = datetime.now(timezone.utc).date().isoformat()
        history.last_run_date = today
        if synced:
            history.last_sync_date = today
        self._write(history)
