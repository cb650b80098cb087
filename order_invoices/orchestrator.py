"""Selection state machine: browse listing pages, pick orders, capture or queue them.

The orchestrator keeps one piece of in-memory state, the current page and
whether selections are captured right away or queued. Every transition is a
plain method so the logic can be driven without a terminal; ``run`` is the
interactive loop that renders the menu and dispatches the operator's choice.
"""
import asyncio
import logging
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field

from .batch_queue import BatchQueue
from .browser import BrowserSession
from .capture import CaptureEngine
from .config import Settings
from .errors import CaptureError, SessionError
from .history import HistoryStore
from .listing import ListingNavigator
from .models import CaptureOutcome, ListingPage, Mode, OrderSummary, ProcessSummary
from .prompts import Choice, ConsolePrompter, Separator

logger = logging.getLogger(__name__)


class Action(str, Enum):
    """Menu actions available while browsing."""
    SELECT = "select"
    BATCH = "batch"
    PROCESS = "process"
    CLEAR = "clear"
    GOTO = "goto"
    NEXT = "next"
    PREV = "prev"
    ENTER_BATCH = "enter_batch"
    EXIT_BATCH = "exit_batch"
    EXIT = "exit"


class BrowsingState(BaseModel):
    """Current listing page (zero-based) and selection mode."""
    page: int = Field(0, ge=0)
    mode: Mode = Mode.IMMEDIATE


def validate_page_number(raw: str) -> Union[bool, str]:
    """Accept whole numbers >= 1. Returns True or an error message."""
    try:
        number = int(raw.strip())
    except (ValueError, AttributeError):
        return "Please enter a valid page number"
    if number < 1:
        return "Please enter a valid page number"
    return True


def page_index_from_input(raw: str) -> int:
    """Convert a 1-based page number typed by the operator to a page index."""
    if validate_page_number(raw) is not True:
        raise ValueError(f"Invalid page number: {raw!r}")
    return int(raw.strip()) - 1


class SelectionOrchestrator:
    """Menu-driven state machine over listing pages and the batch queue."""

    def __init__(
        self,
        listing: ListingNavigator,
        capture: CaptureEngine,
        queue: BatchQueue,
        history: HistoryStore,
        prompter: ConsolePrompter,
        settings: Settings,
        browser: Optional[BrowserSession] = None,
    ):
        self.listing = listing
        self.capture = capture
        self.queue = queue
        self.history = history
        self.prompter = prompter
        self.settings = settings
        self.browser = browser
        self.state = BrowsingState()

    # Pagination

    def has_next(self, listing_page: ListingPage) -> bool:
        """A short page means we've reached the end of the order history.

        Counts every card on the page, including ones dropped for lacking an
        order id.
        """
        count = max(listing_page.card_count, len(listing_page.orders))
        return count >= self.settings.page_size

    def go_next(self, listing_page: ListingPage) -> bool:
        if not self.has_next(listing_page):
            return False
        self.state.page += 1
        return True

    def go_prev(self) -> None:
        self.state.page = max(0, self.state.page - 1)

    def go_to(self, raw: str) -> int:
        """Jump to a 1-based page number. Raises ValueError on invalid input."""
        self.state.page = page_index_from_input(raw)
        return self.state.page

    # Mode

    def enter_batch(self) -> None:
        self.state.mode = Mode.BATCH

    def exit_batch(self) -> None:
        self.state.mode = Mode.IMMEDIATE

    def toggle_batch(self) -> Mode:
        if self.state.mode == Mode.BATCH:
            self.exit_batch()
        else:
            self.enter_batch()
        return self.state.mode

    # Selection handling

    async def capture_now(self, orders: list[OrderSummary]) -> list[CaptureOutcome]:
        """Capture each order in listed order; one failure doesn't stop the rest."""
        outcomes = []
        for index, order in enumerate(orders, 1):
            self.prompter.info(f"[{index}/{len(orders)}] Downloading invoice for {order.order_id}...")
            try:
                file_name = await self.capture.capture(order.order_id, order.order_date)
            except CaptureError as e:
                logger.error(f"Download failed for {order.order_id}: {e}")
                self.prompter.info(f"  Failed: {e.reason}")
                outcomes.append(CaptureOutcome(order_id=order.order_id, success=False, error=str(e)))
                continue
            self.prompter.info(f"  Saved {file_name}")
            outcomes.append(CaptureOutcome(order_id=order.order_id, success=True, file_name=file_name))

        if any(outcome.success for outcome in outcomes):
            self.history.mark_run(synced=True)
        return outcomes

    def queue_orders(self, orders: list[OrderSummary]) -> int:
        added = self.queue.add(orders)
        self.prompter.info(f"Added {added} invoice(s) to the batch queue ({len(self.queue.pending())} pending)")
        return added

    async def process_batch(self) -> ProcessSummary:
        """
        Download every pending queue item in order.

        Each result is persisted before moving on. After a failure the
        operator decides whether to keep going; stopping leaves the rest
        pending. The queue file is removed only when everything completed.
        """
        summary = ProcessSummary()
        pending = self.queue.pending()
        if not pending:
            self.prompter.info("No pending invoices in the batch queue.")
            return summary

        logger.info(f"Processing {len(pending)} queued invoices")
        for index, item in enumerate(pending, 1):
            summary.attempted += 1
            self.prompter.info(f"[{index}/{len(pending)}] {item.order_id} - {item.description}")
            try:
                file_name = await self.capture.capture(item.order_id, item.date)
            except CaptureError as e:
                self.queue.mark_failed(item, str(e))
                summary.failed += 1
                logger.error(f"Batch item {item.order_id} failed: {e}")
                self.prompter.info(f"  Failed: {e.reason}")
                if not await self.prompter.confirm("Continue processing remaining invoices?", default=True):
                    summary.halted = True
                    break
                continue

            self.queue.mark_completed(item)
            summary.completed += 1
            self.prompter.info(f"  Saved {file_name}")

        if summary.completed:
            self.history.mark_run(synced=True)

        if self.queue.all_completed():
            self.queue.clear()
            summary.cleared = True

        logger.info(
            f"Batch finished: {summary.completed} completed, {summary.failed} failed"
            f"{', halted by operator' if summary.halted else ''}"
        )
        self.prompter.info(
            f"\nBatch complete: {summary.completed} downloaded, {summary.failed} failed."
        )
        return summary

    def clear_batch(self) -> None:
        self.queue.clear()
        self.prompter.info("Batch queue cleared.")

    # Menu

    def menu_choices(self, listing_page: ListingPage) -> list[Choice]:
        no_orders = "no orders on this page" if not listing_page.orders else False
        pending = len(self.queue.pending())

        if self.state.mode == Mode.BATCH:
            choices = [
                Choice(name="Select orders for batch", value=Action.SELECT, disabled=no_orders),
                Choice(name="Exit batch mode", value=Action.EXIT_BATCH),
            ]
        else:
            choices = [
                Choice(name="Select orders to download", value=Action.SELECT, disabled=no_orders),
                Choice(name="Add orders to batch queue", value=Action.BATCH, disabled=no_orders),
                Choice(name="Enter batch mode", value=Action.ENTER_BATCH),
            ]

        choices.extend([
            Choice(
                name=f"Process batch queue ({pending} pending)",
                value=Action.PROCESS,
                disabled="nothing pending" if pending == 0 else False,
            ),
            Choice(
                name="Clear batch queue",
                value=Action.CLEAR,
                disabled="queue empty" if self.queue.count() == 0 else False,
            ),
            Choice(name="Go to page...", value=Action.GOTO),
            Separator(),
            Choice(name="Next page", value=Action.NEXT, disabled=not self.has_next(listing_page)),
            Choice(name="Previous page", value=Action.PREV, disabled=self.state.page == 0),
            Choice(name="Exit application", value=Action.EXIT),
        ])
        return choices

    async def pick_orders(self, listing_page: ListingPage, message: str) -> list[OrderSummary]:
        choices = []
        for order in listing_page.orders:
            name = f"{order.order_date} | {order.total} | {order.label[:60]}"
            if self.history.is_recorded(order.order_id):
                name += " (downloaded)"
            choices.append(Choice(name=name, value=order))
        return await self.prompter.checkbox(message, choices)

    async def dispatch(self, action: Action, listing_page: ListingPage) -> bool:
        """Apply one menu action. Returns False when the operator exits."""
        if action == Action.NEXT:
            self.go_next(listing_page)
        elif action == Action.PREV:
            self.go_prev()
        elif action == Action.GOTO:
            self.state.page = await self.prompter.text(
                "Enter page number:",
                validate=validate_page_number,
                transform=page_index_from_input,
            )
        elif action == Action.ENTER_BATCH:
            self.enter_batch()
        elif action == Action.EXIT_BATCH:
            self.exit_batch()
        elif action == Action.SELECT and self.state.mode == Mode.IMMEDIATE:
            selected = await self.pick_orders(listing_page, "Select orders to download:")
            await self.capture_now(selected)
        elif action in (Action.SELECT, Action.BATCH):
            selected = await self.pick_orders(listing_page, "Select orders to add to the batch:")
            self.queue_orders(selected)
        elif action == Action.PROCESS:
            await self.process_batch()
        elif action == Action.CLEAR:
            self.clear_batch()
        elif action == Action.EXIT:
            if self.browser is not None:
                await self.browser.close()
            self.prompter.info("\nGoodbye!")
            return False
        return True

    async def load_page(self) -> ListingPage:
        """Fetch the current page, backing off once if a bot check shows up."""
        listing_page = await self.listing.fetch_page(self.state.page)
        if await self.listing.is_blocked():
            self.prompter.info("Bot check detected, slowing down before reloading...")
            await self.listing.simulate_human_behavior()
            listing_page = await self.listing.fetch_page(self.state.page)
        return listing_page

    async def run(self) -> None:
        """Interactive loop until the operator exits."""
        while True:
            try:
                listing_page = await self.load_page()
                self.prompter.show_listing(listing_page, self.state.mode, len(self.queue.pending()))
                action = await self.prompter.choose("Choose an action:", self.menu_choices(listing_page))
                if not await self.dispatch(action, listing_page):
                    return
            except (SessionError, OSError, ValueError):
                # Session loss and history/queue storage problems end the run
                raise
            except Exception as e:
                logger.error(f"Error processing orders: {e}", exc_info=True)
                self.prompter.info("\nAn error occurred. Retrying shortly, press Ctrl+C to exit.")
                await asyncio.sleep(self.settings.error_pause)
