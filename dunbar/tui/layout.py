"""Viewport layout for the message timeline.

The timeline is a list of display items: messages interleaved with a date
separator before the first message of each local day. Every item renders to
a whole number of lines, and a message's height depends on whether it groups
with the message drawn just before it.

All measuring and drawing goes through :func:`_walk`, so the number of
messages counted by :func:`visible_count` is always the number of messages
drawn by :func:`visible_items` for the same start, width and height.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Iterator, Optional

from rich.cells import cell_len
from rich.text import Text

from ..messages.models import Message
from .formatting import format_date_separator, format_time, same_day, wrap_text

GROUP_WINDOW = timedelta(minutes=5)
# Messages inspected under a separator above the window
SEPARATOR_LOOKAHEAD = 3

RECEIVED_STYLE = "color(255)"
SENT_STYLE = "color(252)"
SENDER_STYLE = "bold color(117)"
SELF_STYLE = "bold color(141)"
TIME_STYLE = "color(243)"
DOT_STYLE = "color(240)"
SELECTED_BG = " on color(235)"


@dataclass(frozen=True)
class DateSeparator:
    text: str
    date: date


@dataclass(frozen=True)
class DisplayItem:
    message: Optional[Message] = None
    separator: Optional[DateSeparator] = None

    @property
    def is_message(self) -> bool:
        return self.message is not None

    @property
    def is_separator(self) -> bool:
        return self.separator is not None


# (item, width, previous message drawn) -> height in lines
Measure = Callable[[DisplayItem, int, Optional[Message]], int]


def insert_date_separators(messages: list[Message], now: Optional[datetime] = None) -> list[DisplayItem]:
    items: list[DisplayItem] = []
    last: Optional[datetime] = None
    for msg in messages:
        if last is None or not same_day(msg.timestamp, last):
            items.append(
                DisplayItem(
                    separator=DateSeparator(
                        text=format_date_separator(msg.timestamp, now),
                        date=msg.timestamp.astimezone().date(),
                    )
                )
            )
            last = msg.timestamp
        items.append(DisplayItem(message=msg))
    return items


def should_group(msg: Message, prev: Optional[Message]) -> bool:
    """Same sender, same local day and at most five minutes apart in either direction."""
    if prev is None:
        return False
    if msg.sender_uid != prev.sender_uid:
        return False
    if not same_day(msg.timestamp, prev.timestamp):
        return False
    return abs(msg.timestamp - prev.timestamp) <= GROUP_WINDOW


def _attachment_label(msg: Message) -> str:
    counts = Counter(a.type for a in msg.attachments)
    labels = []
    for kind, n in counts.items():
        if kind == "img":
            labels.append("📷 Image" if n == 1 else f"📷 {n} Images")
        elif kind == "video":
            labels.append("🎥 Video" if n == 1 else f"🎥 {n} Videos")
        elif kind == "audio":
            labels.append("🎵 Audio" if n == 1 else f"🎵 {n} Audio")
        else:
            labels.append("📎 File" if n == 1 else f"📎 {n} Files")
    return ", ".join(labels)


def message_text(msg: Message) -> str:
    if not msg.attachments:
        return msg.content
    label = _attachment_label(msg)
    return f"[{label}] {msg.content}" if msg.content else f"[{label}]"


def message_lines(
    msg: Message,
    width: int,
    prev: Optional[Message] = None,
    selected: bool = False,
    now: Optional[datetime] = None,
) -> list[Text]:
    bg = SELECTED_BG if selected else ""
    grouped = should_group(msg, prev)
    lines: list[Text] = []

    if not grouped and prev is not None:
        lines.append(Text(""))

    if not grouped:
        time_str = format_time(msg.timestamp, now)
        if msg.is_sent:
            pad = max(0, width - cell_len(f"You · {time_str}") - 2)
            lines.append(
                Text.assemble(
                    " " * pad,
                    ("You", SELF_STYLE + bg),
                    (" · ", DOT_STYLE + bg),
                    (time_str, TIME_STYLE + bg),
                )
            )
        else:
            lines.append(
                Text.assemble(
                    (msg.sender_name, SENDER_STYLE + bg),
                    (" · ", DOT_STYLE + bg),
                    (time_str, TIME_STYLE + bg),
                )
            )

    for line in wrap_text(message_text(msg), width - 4):
        if msg.is_sent:
            pad = max(0, width - cell_len(line) - 4)
            lines.append(Text(" " * pad + "  " + line, style=SENT_STYLE + bg))
        else:
            lines.append(Text("  " + line, style=RECEIVED_STYLE + bg))
    return lines


def separator_lines(sep: DateSeparator, width: int) -> list[Text]:
    text_width = cell_len(sep.text) + 2
    if text_width >= width - 4:
        return [Text(sep.text, style=TIME_STYLE)]
    left = (width - text_width) // 2
    right = width - text_width - left
    return [
        Text.assemble(
            ("─" * left, DOT_STYLE),
            (f" {sep.text} ", TIME_STYLE),
            ("─" * right, DOT_STYLE),
        )
    ]


def item_height(item: DisplayItem, width: int, prev: Optional[Message]) -> int:
    """Height of *item* as actually rendered."""
    if item.is_message:
        return len(message_lines(item.message, width, prev))
    return len(separator_lines(item.separator, width))


def _separator_leads_into_view(items: list[DisplayItem], i: int, msg_index: int, start: int) -> bool:
    """Whether one of the first few messages under the separator at *i* is at or after *start*."""
    index = msg_index
    for item in items[i + 1 : i + 1 + SEPARATOR_LOOKAHEAD]:
        if item.is_separator:
            return False
        if index >= start:
            return True
        index += 1
    return False


def _next_drawn(
    items: list[DisplayItem], i: int, msg_index: int, target: int
) -> Optional[DisplayItem]:
    """The message numbered *target*, searched from the item after *i* (numbered *msg_index*)."""
    index = msg_index
    for j in range(i + 1, len(items)):
        item = items[j]
        if item.is_message:
            if index == target:
                return item
            index += 1
    return None


def _walk(
    items: list[DisplayItem],
    start: int,
    width: int,
    height: int,
    measure: Measure,
) -> Iterator[tuple[DisplayItem, Optional[Message]]]:
    """Yield each item placed in a window whose first message is number *start*.

    Items are placed greedily until the next one would overflow *height*.
    A separator before the window is placed only when one of the first few
    messages of its day is in the window. Each yield carries the previous message drawn, or None right
    after a separator or at the top of the window.
    """
    used = 0
    msg_index = 0
    prev: Optional[Message] = None
    in_view = False

    for i, item in enumerate(items):
        if item.is_message:
            if msg_index < start:
                msg_index += 1
                continue
            h = measure(item, width, prev)
            if used + h > height:
                return
            used += h
            in_view = True
            yield item, prev
            prev = item.message
            msg_index += 1
        else:
            if not in_view and not _separator_leads_into_view(items, i, msg_index, start):
                continue
            h = measure(item, width, None)
            # A separator never ends the window on its own
            following = _next_drawn(items, i, msg_index, max(msg_index, start))
            need = h + (measure(following, width, None) if following else 0)
            if used + need > height:
                return
            used += h
            yield item, None
            prev = None


def message_count(items: list[DisplayItem]) -> int:
    return sum(1 for item in items if item.is_message)


def visible_count(
    items: list[DisplayItem],
    start: int,
    width: int,
    height: int,
    measure: Measure = item_height,
) -> int:
    """Number of whole messages that fit from message *start*, at least 1.

    Returns 0 only when there is nothing to show from *start*.
    """
    if start >= message_count(items):
        return 0
    count = sum(1 for item, _ in _walk(items, start, width, height, measure) if item.is_message)
    return max(1, count)


def visible_items(
    items: list[DisplayItem],
    start: int,
    width: int,
    height: int,
    measure: Measure = item_height,
) -> list[tuple[DisplayItem, Optional[Message]]]:
    """The items drawn for a window starting at message *start*, each with its predecessor.

    When not even the first message fits it is still returned alone, matching
    the minimum of 1 reported by :func:`visible_count`.
    """
    placed = list(_walk(items, start, width, height, measure))
    if any(item.is_message for item, _ in placed) or start >= message_count(items):
        return placed
    first = [item for item in items if item.is_message][start]
    return [(first, None)]


def end_top(
    items: list[DisplayItem],
    width: int,
    height: int,
    measure: Measure = item_height,
) -> int:
    """Largest start whose window still reaches the last message."""
    total = message_count(items)
    for top in range(total - 1, -1, -1):
        if top + visible_count(items, top, width, height, measure) >= total:
            return top
    return 0


def last_page_top(
    items: list[DisplayItem],
    width: int,
    height: int,
    measure: Measure = item_height,
) -> int:
    """Smallest start whose window still reaches the last message, a full final page."""
    total = message_count(items)
    if total == 0:
        return 0
    top = total - 1
    while top > 0 and (top - 1) + visible_count(items, top - 1, width, height, measure) >= total:
        top -= 1
    return top


def page_up_top(
    items: list[DisplayItem],
    top: int,
    width: int,
    height: int,
    measure: Measure = item_height,
) -> int:
    """Start of the window that ends just before message *top*."""
    if top <= 0:
        return 0
    new_top = top - 1
    while new_top > 0 and (new_top - 1) + visible_count(items, new_top - 1, width, height, measure) >= top:
        new_top -= 1
    return new_top


class Viewport:
    """Cursor and window top over a message timeline."""

    def __init__(
        self,
        items: list[DisplayItem],
        width: int,
        height: int,
        measure: Measure = item_height,
    ):
        self.items = items
        self.width = width
        self.height = height
        self.measure = measure
        self.total = message_count(items)
        self.cursor = 0
        self.top = 0

    def visible_count(self) -> int:
        return visible_count(self.items, self.top, self.width, self.height, self.measure)

    def visible_items(self) -> list[tuple[DisplayItem, Optional[Message]]]:
        return visible_items(self.items, self.top, self.width, self.height, self.measure)

    def _follow_cursor(self) -> None:
        if self.cursor < self.top:
            self.top = self.cursor
        while self.top < self.cursor and self.cursor >= self.top + self.visible_count():
            self.top += 1

    def resize(self, width: int, height: int) -> None:
        self.width, self.height = width, height
        self._follow_cursor()

    def down(self) -> None:
        if self.cursor < self.total - 1:
            self.cursor += 1
            self._follow_cursor()

    def up(self) -> None:
        if self.cursor > 0:
            self.cursor -= 1
            self._follow_cursor()

    def home(self) -> None:
        self.cursor = 0
        self.top = 0

    def end(self) -> None:
        if self.total == 0:
            return
        self.cursor = self.total - 1
        self.top = end_top(self.items, self.width, self.height, self.measure)

    def page_down(self) -> None:
        if self.total == 0:
            return
        step = self.visible_count()
        last_top = last_page_top(self.items, self.width, self.height, self.measure)
        self.top = min(self.top + step, last_top)
        self.cursor = min(self.total - 1, self.cursor + step)
        self._follow_cursor()

    def page_up(self) -> None:
        new_top = page_up_top(self.items, self.top, self.width, self.height, self.measure)
        self.cursor = max(0, self.cursor - (self.top - new_top))
        self.top = new_top
        self._follow_cursor()
