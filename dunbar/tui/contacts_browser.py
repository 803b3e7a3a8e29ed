"""Contact list with a detail pane."""

import logging
from typing import Optional

from rich.align import Align
from rich.console import Group, RenderableType
from rich.text import Text

from ..contacts.manager import ContactManager
from ..contacts.models import Contact
from ..errors import DunbarError
from .formatting import truncate
from .messages_browser import HEADER_STYLE, MUTED_STYLE, SELECTED_STYLE, Action, confirm_dialog, join_panes

logger = logging.getLogger(__name__)

SECTION_STYLE = "bold color(170)"
VALUE_STYLE = "color(255)"
DIVIDER = "─" * 33


def _section(lines: list[Text], title: str) -> None:
    lines.append(Text(""))
    lines.append(Text(DIVIDER, style=MUTED_STYLE))
    lines.append(Text(title, style=SECTION_STYLE))
    lines.append(Text(""))


def _field(label: str, value: str) -> Text:
    return Text.assemble((f"  {label}:", MUTED_STYLE), " ", (value, VALUE_STYLE))


def contact_details(contact: Contact) -> list[Text]:
    lines = [Text(f"👤 {contact.display_name()}", style=HEADER_STYLE)]
    if contact.nickname:
        lines.append(Text.assemble(("   aka ", MUTED_STYLE), (contact.nickname, VALUE_STYLE)))

    if contact.phone_numbers:
        _section(lines, "📞 Phone")
        lines.extend(_field(p.type, p.value) for p in contact.phone_numbers)

    if contact.email_addresses:
        _section(lines, "📧 Email")
        lines.extend(_field(e.type, e.value) for e in contact.email_addresses)

    org = contact.organization
    if org and org.name:
        _section(lines, "💼 Work")
        lines.append(_field("Company", org.name))
        if org.title:
            lines.append(_field("Title", org.title))
        if org.department:
            lines.append(_field("Department", org.department))

    if contact.addresses:
        _section(lines, "🏠 Address")
        for addr in contact.addresses:
            lines.append(Text(f"  {addr.type}:", style=MUTED_STYLE))
            if addr.street:
                lines.append(Text(f"    {addr.street}", style=VALUE_STYLE))
            city_state = ", ".join(p for p in (addr.city, addr.state, addr.postal_code) if p)
            if city_state:
                lines.append(Text(f"    {city_state}", style=VALUE_STYLE))
            if addr.country:
                lines.append(Text(f"    {addr.country}", style=VALUE_STYLE))

    if contact.birthday:
        b = contact.birthday
        _section(lines, "🎂 Birthday")
        lines.append(Text(f"  {b:%B} {b.day}, {b.year}", style=VALUE_STYLE))

    if contact.tags:
        _section(lines, "🏷  Tags")
        lines.append(Text("  " + ", ".join(contact.tags), style=VALUE_STYLE))

    if contact.notes:
        _section(lines, "📝 Notes")
        lines.append(Text(f"  {contact.notes}", style=VALUE_STYLE))
    return lines


class ContactsBrowser:
    """Key-driven state machine behind ``dunbar contacts``."""

    def __init__(self, manager: ContactManager, contacts: list[Contact], width: int = 80, height: int = 25):
        self.manager = manager
        self.contacts = sorted(contacts, key=lambda c: c.full_name.lower())
        self.width = width
        self.height = height - 3
        self.cursor = 0
        self.top = 0
        self.confirming: Optional[Contact] = None
        self.status = ""

    def resize(self, width: int, height: int) -> None:
        self.width = width
        self.height = height - 3

    def handle_key(self, key: str) -> Action:
        if self.confirming is not None:
            return self._handle_confirm(key)

        n = len(self.contacts)
        page = max(1, self.height)
        if key in ("q", "ctrl+c"):
            return Action.QUIT
        if key == "d" and self.cursor < n:
            self.confirming = self.contacts[self.cursor]
            return Action.CONFIRM_DELETE
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

    def _handle_confirm(self, key: str) -> Action:
        if key in ("y", "Y"):
            contact = self.confirming
            self.confirming = None
            try:
                self.manager.delete(contact.uid)
            except DunbarError as e:
                logger.error("Delete failed: %s", e)
                self.status = f"Error: {e}"
                return Action.DELETE_FAILED
            self.contacts = [c for c in self.contacts if c.uid != contact.uid]
            if self.cursor >= len(self.contacts):
                self.cursor = max(0, len(self.contacts) - 1)
            self.top = min(self.top, self.cursor)
            self.status = f"Deleted {contact.display_name()}"
            return Action.DELETE_CONFIRMED
        if key in ("n", "N", "esc"):
            self.confirming = None
            return Action.DELETE_CANCELLED
        return Action.NONE

    def render(self) -> RenderableType:
        if not self.contacts:
            return Text(
                "No contacts found. Run 'dunbar contacts sync' to sync your contacts.\n\n"
                "Press 'q' to quit."
            )
        if self.confirming is not None:
            dialog = confirm_dialog("Delete Contact?", self.confirming.display_name())
            return Align.center(dialog, vertical="middle", height=self.height + 3)

        left_width = max(30, self.width * 2 // 5)
        left = [Text(f"Contacts ({len(self.contacts)})", style=HEADER_STYLE)]
        end = min(self.top + max(1, self.height), len(self.contacts))
        for i in range(self.top, end):
            name = self.contacts[i].display_name()
            left.append(
                Text(f" {truncate(name, left_width - 2)}", style=SELECTED_STYLE if i == self.cursor else "")
            )

        lines = join_panes(left, contact_details(self.contacts[self.cursor]), left_width)
        lines.append(Text(""))
        if self.status:
            lines.append(Text(self.status, style="color(196)" if self.status.startswith("Error") else MUTED_STYLE))
        else:
            lines.append(
                Text(
                    "j/k: down/up • g/G: top/bottom • pgup/pgdn: page up/down • d: delete • q: quit",
                    style=MUTED_STYLE,
                )
            )
        return Group(*lines)
