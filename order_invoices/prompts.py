"""Console prompts and listing display.

Prompts read from stdin on a worker thread so the event loop stays free
while the operator is thinking.
"""
import asyncio
from typing import Any, Callable, Optional, Union

from pydantic import BaseModel

from .models import ListingPage, Mode

CYAN = "\x1b[36m"
RESET = "\x1b[0m"
DIVIDER = "─" * 80


class Choice(BaseModel):
    """One entry of a list menu or checkbox prompt."""
    name: str
    value: Any = None
    disabled: Union[bool, str] = False
    checked: bool = False


class Separator(Choice):
    """Visual separator line in a list menu."""
    name: str = "-" * 20
    disabled: Union[bool, str] = True


Validator = Callable[[str], Union[bool, str]]


def parse_selection(raw: str, count: int) -> list[int]:
    """
    Parse checkbox input into zero-based indexes.

    Accepts "1,3,5", ranges like "2-4", "a"/"all", or blank for nothing.
    Raises ValueError on anything else or on numbers out of range.
    """
    raw = raw.strip().lower()
    if not raw:
        return []
    if raw in ("a", "all"):
        return list(range(count))

    indexes: list[int] = []
    for part in raw.replace(" ", ",").split(","):
        if not part:
            continue
        if "-" in part:
            start_str, end_str = part.split("-", 1)
            start, end = int(start_str), int(end_str)
            if start > end:
                raise ValueError(f"Invalid range: {part}")
            numbers = range(start, end + 1)
        else:
            numbers = [int(part)]
        for number in numbers:
            if not 1 <= number <= count:
                raise ValueError(f"Out of range: {number}")
            if number - 1 not in indexes:
                indexes.append(number - 1)
    return sorted(indexes)


def format_listing(listing: ListingPage, mode: Mode, queued: int, pagination_width: int = 10) -> str:
    """Render a listing page, footer and pagination line as text."""
    lines = ["", "=== Orders ===", ""]
    if not listing.orders:
        lines.append("No orders found on this page.")

    for index, order in enumerate(listing.orders, 1):
        label = order.label
        if len(label) > 60:
            label = label[:60] + "..."
        lines.append(f"{index:>2}. {order.total:<10} - {label}")
        if len(order.items) > 1:
            lines.append(f"    + {len(order.items) - 1} more items")

    lines.extend(["", DIVIDER])
    if listing.last_order_date:
        lines.append(f"Last order on this page: {listing.last_order_date}")
        lines.append("")

    current = listing.page_index + 1
    start_page = (listing.page_index // pagination_width) * pagination_width + 1
    numbers = []
    for page_number in range(start_page, start_page + pagination_width):
        text = f"{page_number:>3}"
        numbers.append(f"{CYAN}{text}{RESET}" if page_number == current else text)
    lines.append(f"Pages: {' '.join(numbers)}")

    if mode == Mode.BATCH:
        lines.append(f"Batch mode: {queued} invoice(s) in queue")
    return "\n".join(lines)


class ConsolePrompter:
    """Numbered-menu prompts on stdin/stdout."""

    def __init__(self, input_func: Callable[[str], str] = input, output_func: Callable[..., None] = print):
        self._input = input_func
        self._print = output_func

    async def _ask(self, prompt: str) -> str:
        return await asyncio.to_thread(self._input, prompt)

    def info(self, message: str) -> None:
        self._print(message)

    def clear(self) -> None:
        self._print("\x1b[2J\x1b[H", end="")

    def show_listing(self, listing: ListingPage, mode: Mode, queued: int) -> None:
        self.clear()
        self._print(format_listing(listing, mode, queued))

    async def choose(self, message: str, choices: list[Choice]) -> Any:
        """List menu; returns the value of the picked entry."""
        numbered: dict[int, Choice] = {}
        self._print(message)
        number = 0
        for choice in choices:
            if isinstance(choice, Separator):
                self._print(f"    {choice.name}")
                continue
            number += 1
            numbered[number] = choice
            if choice.disabled:
                reason = choice.disabled if isinstance(choice.disabled, str) else "disabled"
                self._print(f"    -  {choice.name} ({reason})")
            else:
                self._print(f"  {number:>2}. {choice.name}")

        while True:
            raw = (await self._ask("> ")).strip()
            try:
                picked = numbered[int(raw)]
            except (ValueError, KeyError):
                self._print("Please enter one of the listed numbers.")
                continue
            if picked.disabled:
                self._print("That option is not available right now.")
                continue
            return picked.value

    async def checkbox(self, message: str, choices: list[Choice]) -> list[Any]:
        """Multi-select; returns the values of the picked entries in listed order."""
        self._print(message)
        for index, choice in enumerate(choices, 1):
            mark = "x" if choice.checked else " "
            self._print(f"  [{mark}] {index:>2}. {choice.name}")

        while True:
            raw = await self._ask("Numbers (e.g. 1,3,5-7; 'a' for all; blank for none): ")
            try:
                indexes = parse_selection(raw, len(choices))
            except ValueError as e:
                self._print(f"Invalid selection: {e}")
                continue
            return [choices[i].value for i in indexes if not choices[i].disabled]

    async def text(
        self,
        message: str,
        validate: Optional[Validator] = None,
        transform: Optional[Callable[[str], Any]] = None,
    ) -> Any:
        """Free-text input. validate returns True or an error message."""
        while True:
            raw = (await self._ask(f"{message} ")).strip()
            if validate is not None:
                verdict = validate(raw)
                if verdict is not True:
                    self._print(verdict or "Invalid input")
                    continue
            return transform(raw) if transform else raw

    async def confirm(self, message: str, default: bool = True) -> bool:
        hint = "Y/n" if default else "y/N"
        while True:
            raw = (await self._ask(f"{message} ({hint}) ")).strip().lower()
            if not raw:
                return default
            if raw in ("y", "yes"):
                return True
            if raw in ("n", "no"):
                return False
            self._print("Please answer y or n.")
