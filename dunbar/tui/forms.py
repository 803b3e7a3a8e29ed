"""Setup prompts as small state machines.

Each prompt consumes discrete events (a typed key, submit, cancel) and
exposes ``done`` / ``cancelled`` plus its collected value. Nothing here
touches the terminal, so a setup flow can be driven headlessly by feeding
a scripted list of events.
"""

from dataclasses import dataclass, field

from rich.console import Group, RenderableType
from rich.text import Text

from ..errors import ValidationError

TITLE_STYLE = "bold color(39)"
MUTED_STYLE = "color(240)"
ERROR_STYLE = "color(196)"


@dataclass(frozen=True)
class Event:
    kind: str  # "key" | "submit" | "cancel"
    key: str = ""


SUBMIT = Event("submit")
CANCEL = Event("cancel")


def key(name: str) -> Event:
    return Event("key", name)


def type_text(text: str) -> list[Event]:
    return [key(ch) for ch in text]


def event_for_key(name: str) -> Event:
    """Translate a terminal key name into a prompt event."""
    if name == "enter":
        return SUBMIT
    if name in ("esc", "ctrl+c"):
        return CANCEL
    return key(name)


class Prompt:
    done = False
    cancelled = False

    def handle(self, event: Event) -> None:
        raise NotImplementedError

    def render(self) -> RenderableType:
        raise NotImplementedError

    @property
    def finished(self) -> bool:
        return self.done or self.cancelled


class Choice(Prompt):
    def __init__(self, title: str, options: list[str]):
        self.title = title
        self.options = options
        self.cursor = 0
        self.done = False
        self.cancelled = False

    @property
    def value(self) -> str:
        return self.options[self.cursor]

    def handle(self, event: Event) -> None:
        if event.kind == "cancel" or event.key == "q":
            self.cancelled = True
        elif event.kind == "submit":
            self.done = bool(self.options)
        elif event.key in ("up", "k") and self.cursor > 0:
            self.cursor -= 1
        elif event.key in ("down", "j") and self.cursor < len(self.options) - 1:
            self.cursor += 1

    def render(self) -> RenderableType:
        lines = [Text(self.title, style=TITLE_STYLE), Text("")]
        for i, option in enumerate(self.options):
            if i == self.cursor:
                lines.append(Text(f"> {option}", style="bold color(170)"))
            else:
                lines.append(Text(f"  {option}"))
        lines.append(Text(""))
        lines.append(Text("↑/↓: navigate • enter: select • q: quit", style=MUTED_STYLE))
        return Group(*lines)


@dataclass
class Field:
    title: str
    description: str = ""
    secret: bool = False
    required: bool = True
    value: str = ""

    def validate(self) -> None:
        if self.required and not self.value.strip():
            raise ValidationError(f"{self.title.lower()} cannot be empty")


class Form(Prompt):
    """One or more text fields filled in order, with an optional note shown above them."""

    def __init__(self, title: str, fields: list[Field], note: str = ""):
        self.title = title
        self.fields = fields
        self.note = note
        self.index = 0
        self.error = ""
        self.done = False
        self.cancelled = False

    @property
    def current(self) -> Field:
        return self.fields[self.index]

    def values(self) -> dict[str, str]:
        return {f.title: f.value.strip() for f in self.fields}

    def handle(self, event: Event) -> None:
        if event.kind == "cancel":
            self.cancelled = True
            return
        if event.kind == "submit":
            try:
                self.current.validate()
            except ValidationError as e:
                self.error = str(e)
                return
            self.error = ""
            if self.index == len(self.fields) - 1:
                self.done = True
            else:
                self.index += 1
            return

        if event.key == "backspace":
            self.current.value = self.current.value[:-1]
        elif len(event.key) == 1:
            self.current.value += event.key

    def render(self) -> RenderableType:
        lines = [Text(self.title, style=TITLE_STYLE)]
        if self.note:
            lines.append(Text(self.note))
        lines.append(Text(""))
        for i, f in enumerate(self.fields[: self.index + 1]):
            shown = "•" * len(f.value) if f.secret else f.value
            lines.append(Text(f.title, style="bold"))
            if f.description:
                lines.append(Text(f.description, style=MUTED_STYLE))
            lines.append(Text(f"> {shown}" + ("█" if i == self.index else "")))
        if self.error:
            lines.append(Text(f"* {self.error}", style=ERROR_STYLE))
        lines.append(Text(""))
        lines.append(Text("enter: next • esc: cancel", style=MUTED_STYLE))
        return Group(*lines)


class Confirm(Prompt):
    def __init__(
        self,
        title: str,
        description: str = "",
        affirmative: str = "Yes",
        negative: str = "No",
    ):
        self.title = title
        self.description = description
        self.affirmative = affirmative
        self.negative = negative
        self.value = True
        self.done = False
        self.cancelled = False

    def handle(self, event: Event) -> None:
        if event.kind == "cancel":
            self.cancelled = True
        elif event.kind == "submit":
            self.done = True
        elif event.key in ("y", "Y"):
            self.value = True
            self.done = True
        elif event.key in ("n", "N"):
            self.value = False
            self.done = True
        elif event.key in ("left", "right", "h", "l", "tab"):
            self.value = not self.value

    def render(self) -> RenderableType:
        yes_style = "bold color(46) on color(22)" if self.value else MUTED_STYLE
        no_style = "bold color(196) on color(52)" if not self.value else MUTED_STYLE
        return Group(
            Text(self.title, style=TITLE_STYLE),
            Text(self.description),
            Text(""),
            Text.assemble((f" {self.affirmative} ", yes_style), "  ", (f" {self.negative} ", no_style)),
        )


@dataclass
class ScriptedPrompter:
    """Runs prompts against a fixed event list instead of the keyboard."""

    events: list[Event] = field(default_factory=list)
    shown: list[Prompt] = field(default_factory=list)

    def __call__(self, prompt: Prompt) -> Prompt:
        self.shown.append(prompt)
        while not prompt.finished:
            if not self.events:
                prompt.cancelled = True
                break
            prompt.handle(self.events.pop(0))
        return prompt

