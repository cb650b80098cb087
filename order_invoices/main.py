"""Order Invoice Downloader - Command line entry point

Pick a retailer, sign in through the browser window, then browse the order
history and download invoices one at a time or through the batch queue.
"""
import sys
import asyncio
import logging
from datetime import datetime, timezone

from .batch_queue import BatchQueue
from .browser import BrowserSession
from .capture import CaptureEngine
from .config import RETAILERS, RetailerSite, Settings, settings
from .history import HistoryStore
from .listing import ListingNavigator
from .orchestrator import SelectionOrchestrator
from .prompts import Choice, ConsolePrompter
from .rate_gate import RateGate
from .session import SessionController

EXIT_CHOICE = "exit"

logger = logging.getLogger(__name__)


def setup_logging(settings: Settings) -> None:
    """
    Configure application logging.

    error.log collects errors across runs, separated by a session banner;
    debug.log holds only the current run.
    """
    settings.ensure_directories()
    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    divider = "=" * 80
    error_log = settings.log_dir / 'error.log'
    with open(error_log, 'a', encoding='utf-8') as f:
        f.write(f"\n{divider}\nSession Started: {datetime.now(timezone.utc).isoformat()}\n{divider}\n")

    error_handler = logging.FileHandler(error_log, encoding='utf-8')
    error_handler.setLevel(logging.ERROR)

    debug_handler = logging.FileHandler(settings.log_dir / 'debug.log', mode='w', encoding='utf-8')
    debug_handler.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if settings.debug else logging.WARNING)

    logging.basicConfig(
        level=logging.DEBUG,
        format=log_format,
        handlers=[error_handler, debug_handler, console_handler],
        force=True,
    )

    # Reduce noise from external libraries
    logging.getLogger('asyncio').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)


async def select_retailer(prompter: ConsolePrompter) -> RetailerSite | None:
    choices = [Choice(name=site.name, value=site.slug) for site in RETAILERS.values()]
    choices.append(Choice(name="Exit", value=EXIT_CHOICE))
    slug = await prompter.choose("Select the e-commerce platform:", choices)
    if slug == EXIT_CHOICE:
        return None
    return RETAILERS[slug]


async def run_retailer(site: RetailerSite, settings: Settings, prompter: ConsolePrompter) -> None:
    """Wire up the pipeline for one retailer and hand control to the menu loop."""
    gate = RateGate(settings.rate_min_interval_ms)

    history = HistoryStore(site, settings)
    history.initialize()
    history.mark_run()

    queue = BatchQueue(site, settings)
    queue.load()

    browser = BrowserSession(settings)
    try:
        await browser.start()
        session = SessionController(browser, site, settings, gate)
        await session.ensure_authenticated()

        orchestrator = SelectionOrchestrator(
            listing=ListingNavigator(browser, site, settings, gate),
            capture=CaptureEngine(browser, site, settings, gate, history),
            queue=queue,
            history=history,
            prompter=prompter,
            settings=settings,
            browser=browser,
        )
        await orchestrator.run()
    finally:
        await browser.close()


async def _main(settings: Settings) -> int:
    prompter = ConsolePrompter()
    site = await select_retailer(prompter)
    if site is None:
        return 0

    logger.info(f"Starting {site.name} session, receipts in {settings.retailer_dir(site)}")
    await run_retailer(site, settings, prompter)
    return 0


def main() -> int:
    setup_logging(settings)
    try:
        return asyncio.run(_main(settings))
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130
    except Exception as e:
        logger.error(f"An error occurred: {e}", exc_info=True)
        print(f"\nAn error occurred: {e}", file=sys.stderr)
        return 1


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
