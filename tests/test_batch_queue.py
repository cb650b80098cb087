"""Tests for the batch queue."""
import json
import logging


class TestAdd:
    """Test queuing orders."""

    def test_add_three_orders(self, queue, order_factory):
        """Test that added orders are pending and persisted."""
        from order_invoices.models import BatchStatus

        added = queue.add([order_factory("A1"), order_factory("A2"), order_factory("A3")])

        assert added == 3
        assert queue.count() == 3
        assert [item.status for item in queue.items()] == [BatchStatus.PENDING] * 3
        assert queue.queue_file.exists()

    def test_item_fields(self, queue, site, order_factory):
        """Test how an order maps onto a batch item."""
        queue.add([order_factory("A1", items=["Kettle", "Mug"], total="$5.00")])

        item = queue.items()[0]
        assert item.order_id == "A1"
        assert item.description == "Kettle"
        assert item.total == "$5.00"
        assert item.date == "January 5, 2024"
        assert item.url == site.invoice_url("A1")
        assert item.selected_at.tzinfo is not None

    def test_pending_duplicates_are_skipped(self, queue, order_factory):
        """Test that an order already pending is not queued twice."""
        queue.add([order_factory("A1")])

        added = queue.add([order_factory("A1"), order_factory("A2")])

        assert added == 1
        assert [item.order_id for item in queue.items()] == ["A1", "A2"]

    def test_failed_order_can_be_requeued(self, queue, order_factory):
        """Test re-selecting a failed order queues a fresh pending item."""
        queue.add([order_factory("A1")])
        queue.mark_failed(queue.items()[0], "boom")

        assert queue.add([order_factory("A1")]) == 1
        assert len(queue.pending()) == 1

    def test_add_nothing_does_not_write(self, queue):
        """Test adding no orders leaves no file behind."""
        assert queue.add([]) == 0
        assert not queue.queue_file.exists()


class TestPersistence:
    """Test save/load behaviour."""

    def test_round_trip(self, site, test_settings, queue, order_factory):
        """Test that save then load reproduces the items."""
        from order_invoices.batch_queue import BatchQueue

        queue.add([order_factory("A1"), order_factory("A2"), order_factory("A3")])
        queue.mark_completed(queue.items()[0])
        queue.mark_failed(queue.items()[1], "Navigation timeout")
        queue.save()

        reloaded = BatchQueue(site, test_settings)
        reloaded.load()

        assert [item.model_dump() for item in reloaded.items()] == [item.model_dump() for item in queue.items()]

    def test_file_layout(self, queue, order_factory):
        """Test the JSON structure on disk."""
        queue.add([order_factory("A1")])

        data = json.loads(queue.queue_file.read_text())
        assert set(data) == {"lastUpdated", "invoices"}
        assert data["lastUpdated"] is not None
        assert data["invoices"][0]["orderId"] == "A1"
        assert data["invoices"][0]["status"] == "pending"

    def test_save_creates_parent_directory(self, queue, order_factory):
        """Test that save works before the retailer dir exists."""
        assert not queue.queue_file.parent.exists()

        queue.add([order_factory("A1")])

        assert queue.queue_file.exists()

    def test_load_missing_file_is_empty(self, queue, caplog):
        """Test first-run load without an error log."""
        with caplog.at_level(logging.ERROR):
            queue.load()

        assert queue.count() == 0
        assert not caplog.records

    def test_load_corrupt_file_is_empty(self, queue, caplog):
        """Test that an unreadable queue degrades to empty and is logged."""
        queue.queue_file.parent.mkdir(parents=True)
        queue.queue_file.write_text("{broken")

        with caplog.at_level(logging.ERROR):
            queue.load()

        assert queue.count() == 0
        assert any("batch queue" in record.message for record in caplog.records)

    def test_load_invalid_items_is_empty(self, queue):
        """Test that a structurally wrong file degrades to empty."""
        queue.queue_file.parent.mkdir(parents=True)
        queue.queue_file.write_text(json.dumps({"invoices": [{"orderId": "A1"}]}))

        queue.load()

        assert queue.count() == 0


class TestStatus:
    """Test status transitions."""

    def test_mark_completed_persists(self, site, test_settings, queue, order_factory):
        """Test completion sets processed_at and is saved."""
        from order_invoices.batch_queue import BatchQueue
        from order_invoices.models import BatchStatus

        queue.add([order_factory("A1")])
        queue.mark_completed(queue.items()[0])

        reloaded = BatchQueue(site, test_settings)
        reloaded.load()
        item = reloaded.items()[0]
        assert item.status == BatchStatus.COMPLETED
        assert item.processed_at is not None
        assert item.error is None

    def test_mark_failed_persists(self, site, test_settings, queue, order_factory):
        """Test failure keeps the error message."""
        from order_invoices.batch_queue import BatchQueue
        from order_invoices.models import BatchStatus

        queue.add([order_factory("A1")])
        queue.mark_failed(queue.items()[0], "PDF render timeout")

        reloaded = BatchQueue(site, test_settings)
        reloaded.load()
        item = reloaded.items()[0]
        assert item.status == BatchStatus.FAILED
        assert item.processed_at is not None
        assert item.error == "PDF render timeout"

    def test_pending_and_counts(self, queue, order_factory):
        """Test filtering by status."""
        from order_invoices.models import BatchStatus

        queue.add([order_factory("A1"), order_factory("A2"), order_factory("A3")])
        queue.mark_completed(queue.items()[0])
        queue.mark_failed(queue.items()[1], "boom")

        assert [item.order_id for item in queue.pending()] == ["A3"]
        assert queue.count_by_status() == {
            BatchStatus.PENDING: 1,
            BatchStatus.COMPLETED: 1,
            BatchStatus.FAILED: 1,
        }

    def test_all_completed(self, queue, order_factory):
        """Test all_completed needs every item completed."""
        queue.add([order_factory("A1"), order_factory("A2")])
        assert queue.all_completed() is False

        queue.mark_completed(queue.items()[0])
        queue.mark_failed(queue.items()[1], "boom")
        assert queue.all_completed() is False

        queue.mark_completed(queue.items()[1])
        assert queue.all_completed() is True


class TestClear:
    """Test clearing the queue."""

    def test_clear_removes_file(self, queue, order_factory):
        """Test that clear empties memory and disk."""
        queue.add([order_factory("A1")])

        queue.clear()

        assert queue.count() == 0
        assert not queue.queue_file.exists()

    def test_clear_without_file(self, queue):
        """Test that clear is a no-op when there is no file."""
        queue.clear()
        queue.clear()

        assert queue.count() == 0
