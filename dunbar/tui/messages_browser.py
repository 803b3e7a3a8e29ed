"""Conversation list with a message preview, and a full-screen message timeline."""

import logging
from enum import Enum
from typing import Optional

from rich.align import Align
from rich.console import Group, RenderableType
from rich.panel import Panel
from rich.text import Text

from ..errors import DunbarError
from ..messages.manager import MessageManager
from ..messages.models import Conversation, Message
from .formatting import format_time_ago, platform_icon, truncate
from .layout import (
    Viewport,
    insert_date_separators,
    message_lines,
    separator_lines,
    visible_items,
)

logger = logging.getLogger(__name__)

PREVIEW_MAX_CHARS = 200

HEADER_STYLE = "bold color(39)"
SELECTED_STYLE = "bold on color(240)"
MUTED_STYLE = "color(240)"


class BrowserState(str, Enum):
    CONVERSATIONS = "conversations"
    MESSAGES = "messages"


class Action(str, Enum):
    NONE = "none"
    QUIT = "quit"
    OPENED = "opened"
    BACK = "back"
    CONFIRM_DELETE = "confirm_delete"
    DELETE_CONFIRMED = "delete_confirmed"
    DELETE_CANCELLED = "delete_cancelled"
    DELETE_FAILED = "delete_failed"


def confirm_dialog(title: str, name: str) -> Panel:
    body = Text.assemble(
        (f"⚠️  {title}", "bold color(196)"),
        "\n\nAre you sure you want to delete:\n",
        (name, "bold color(39)"),
        "\n\n",
        ("This action cannot be undone.", MUTED_STYLE),
        "\n\n\n",
        (" Y ", "bold color(46) on color(22)"),
        "  ",
        (" N ", "bold color(196) on color(52)"),
    )
    return Panel(body, border_style="color(196)", width=60, padding=(1, 2))


def join_panes(left: list[Text], right: list[Text], left_width: int) -> list[Text]:
    lines = []
    for i in range(max(len(left), len(right))):
        line = left[i].copy() if i < len(left) else Text("")
        line.truncate(left_width, pad=True)
        line.append(" │ ", style=MUTED_STYLE)
        if i < len(right):
            line.append_text(right[i])
        lines.append(line)
    return lines


class MessagesBrowser:
    """Key-driven state machine behind ``dunbar messages``.

    ``handle_key`` takes key names as produced by the terminal reader
    ("j", "down", "enter", "esc", "pgdown", ...) and returns the Action it
    caused. ``render`` returns a rich renderable for the current state.
    """

    def __init__(
        self,
        manager: MessageManager,
        conversations: list[Conversation],
        width: int = 80,
        height: int = 25,
    ):
        self.manager = manager
        self.conversations = sorted(conversations, key=lambda c: c.last_activity, reverse=True)
        self.width = width
        self.height = height - 3
        self.state = BrowserState.CONVERSATIONS
        self.cursor = 0
        self.top = 0
        self.selected: Optional[Conversation] = None
        self.messages: list[Message] = []
        self.viewport: Optional[Viewport] = None
        self.confirming: Optional[Conversation] = None
        self.status = ""

    # layout

    @property
    def timeline_height(self) -> int:
        # header (2) + footer (2)
        return max(1, self.height - 4)

    @property
    def timeline_width(self) -> int:
        return self.width - 4

    def resize(self, width: int, height: int) -> None:
        self.width = width
        self.height = height - 3
        if self.viewport:
            self.viewport.resize(self.timeline_width, self.timeline_height)

    # input

    def handle_key(self, key: str) -> Action:
        if self.confirming is not None:
            return self._handle_confirm(key)
        if self.state == BrowserState.MESSAGES:
            return self._handle_messages(key)
        return self._handle_conversations(key)

    def _handle_confirm(self, key: str) -> Action:
        if key in ("y", "Y"):
            conv = self.confirming
            self.confirming = None
            try:
                self.manager.delete_conversation(conv.id)
            except DunbarError as e:
                logger.error("Delete failed: %s", e)
                self.status = f"Error: {e}"
                return Action.DELETE_FAILED
            self.conversations = [c for c in self.conversations if c.id != conv.id]
            if self.cursor >= len(self.conversations):
                self.cursor = max(0, len(self.conversations) - 1)
            self.top = min(self.top, self.cursor)
            if self.state == BrowserState.MESSAGES:
                self._close()
            self.status = f"Deleted {conv.title}"
            return Action.DELETE_CONFIRMED
        if key in ("n", "N", "esc"):
            self.confirming = None
            return Action.DELETE_CANCELLED
        return Action.NONE

    def _handle_messages(self, key: str) -> Action:
        vp = self.viewport
        if key in ("q", "esc"):
            self._close()
            return Action.BACK
        if key == "d":
            self.confirming = self.selected
            return Action.CONFIRM_DELETE
        if key in ("down", "j"):
            vp.down()
        elif key in ("up", "k"):
            vp.up()
        elif key in ("g", "home"):
            vp.home()
        elif key in ("G", "end"):
            vp.end()
        elif key == "pgdown":
            vp.page_down()
        elif key == "pgup":
            vp.page_up()
        return Action.NONE

    def _handle_conversations(self, key: str) -> Action:
        n = len(self.conversations)
        if key in ("q", "ctrl+c"):
            return Action.QUIT
        if key == "d" and self.cursor < n:
            self.confirming = self.conversations[self.cursor]
            return Action.CONFIRM_DELETE
        if key == "enter" and self.cursor < n:
            self._open(self.conversations[self.cursor])
            return Action.OPENED

        page = max(1, self.height)
        if key in ("up", "k") and self.cursor > 0:
            self.cursor -= 1
            self.top = min(self.top, self.cursor)
        elif key in ("down", "j") and self.cursor < n - 1:
            self.cursor += 1
            if self.cursor >= self.top + page:
                self.top = self.cursor - page + 1
        elif key in ("g", "home"):
            self.cursor = self.top = 0
        elif key in ("G", "end"):
            self.cursor = max(0, n - 1)
            self.top = max(0, n - page)
        elif key == "pgup":
            self.cursor = max(0, self.cursor - page)
            self.top = max(0, self.top - page)
        elif key == "pgdown":
            self.cursor = min(max(0, n - 1), self.cursor + page)
            self.top = min(max(0, n - page), self.top + page)
        return Action.NONE

    def _open(self, conv: Conversation) -> None:
        self.state = BrowserState.MESSAGES
        self.selected = conv
        self.status = ""
        try:
            self.messages = self.manager.messages_for_conversation(conv.id)
        except DunbarError as e:
            logger.error("Failed to load messages for %s: %s", conv.id, e)
            self.status = f"Error: {e}"
            self.messages = []
        self.viewport = Viewport(
            insert_date_separators(self.messages), self.timeline_width, self.timeline_height
        )

    def _close(self) -> None:
        self.state = BrowserState.CONVERSATIONS
        self.selected = None
        self.messages = []
        self.viewport = None

    # rendering

    def render(self) -> RenderableType:
        if self.confirming is not None:
            dialog = confirm_dialog("Delete Conversation?", self.confirming.title)
            return Align.center(dialog, vertical="middle", height=self.height + 3)
        if self.state == BrowserState.MESSAGES:
            return self._render_messages()
        if not self.conversations:
            return Text(
                "No conversations found. Run 'dunbar messages sync' to sync your messages.\n\n"
                "Press 'q' to quit."
            )
        return self._render_conversations()

    def _footer(self, keys: str) -> Text:
        if self.status:
            return Text(self.status, style="color(196)" if self.status.startswith("Error") else MUTED_STYLE)
        return Text(keys, style=MUTED_STYLE)

    def _render_conversations(self) -> RenderableType:
        left_width = max(40, self.width * 2 // 5)
        right_width = self.width - left_width - 4

        left = [Text(f"Conversations ({len(self.conversations)})", style=HEADER_STYLE)]
        end = min(self.top + max(1, self.height), len(self.conversations))
        for i in range(self.top, end):
            conv = self.conversations[i]
            label = f"{platform_icon(conv.platform)} {conv.title}"
            if conv.unread_count > 0:
                label += f" ({conv.unread_count})"
            left.append(
                Text(f" {truncate(label, left_width - 2)}", style=SELECTED_STYLE if i == self.cursor else "")
            )

        right = self._preview(self.conversations[self.cursor], right_width)
        lines = join_panes(left, right, left_width)
        lines.append(Text(""))
        lines.append(self._footer("j/k: down/up • g/G: top/bottom • enter: fullscreen • d: delete • q: quit"))
        return Group(*lines)

    def _preview(self, conv: Conversation, width: int) -> list[Text]:
        info = f"[{conv.platform}] · {format_time_ago(conv.last_activity)}"
        if conv.unread_count > 0:
            info += f" ({conv.unread_count} unread)"
        lines = [
            Text(conv.title, style=HEADER_STYLE),
            Text(info, style=MUTED_STYLE),
            Text("─" * 33, style=MUTED_STYLE),
        ]

        try:
            messages = self.manager.messages_for_conversation(conv.id)
        except DunbarError as e:
            logger.error("Failed to load preview for %s: %s", conv.id, e)
            messages = []
        if not messages:
            lines.append(Text("No messages found", style=MUTED_STYLE))
            return lines

        shortened = [
            m.model_copy(update={"content": m.content[: PREVIEW_MAX_CHARS - 3] + "..."})
            if len(m.content) > PREVIEW_MAX_CHARS
            else m
            for m in messages
        ]
        height = max(1, self.height - 5)
        items = insert_date_separators(shortened)
        for item, prev in visible_items(items, 0, width, height, measure=_message_only_height):
            if item.is_message:
                lines.extend(message_lines(item.message, width, prev))
        return lines

    def _render_messages(self) -> RenderableType:
        lines = [Text(self.selected.title if self.selected else "", style=HEADER_STYLE), Text("")]
        vp = self.viewport
        if not self.messages:
            lines.append(Text("No messages found"))
        else:
            index = vp.top
            for item, prev in vp.visible_items():
                if item.is_separator:
                    lines.extend(separator_lines(item.separator, self.timeline_width))
                    continue
                lines.extend(
                    message_lines(item.message, self.timeline_width, prev, selected=index == vp.cursor)
                )
                index += 1
        lines.append(Text(""))
        lines.append(self._footer("j/k: down/up • g/G: top/bottom • d: delete • esc/q: back to conversations"))
        return Group(*lines)


def _message_only_height(item, width, prev) -> int:
    # The preview draws messages without separators
    if item.is_separator:
        return 0
    return len(message_lines(item.message, width, prev))
