"""Terminal driver: a POSIX key reader plus the loops that feed keys to the browsers and prompts."""

import logging
import os
import select
import sys
import termios
import tty
from contextlib import contextmanager
from typing import Iterator, Optional, Protocol

from rich.console import Console, RenderableType
from rich.live import Live

from .forms import Prompt, event_for_key
from .messages_browser import Action

logger = logging.getLogger(__name__)

ESCAPE_TIMEOUT = 0.03  # seconds to wait for the rest of an escape sequence

_ESCAPES = {
    "[A": "up",
    "[B": "down",
    "[C": "right",
    "[D": "left",
    "[H": "home",
    "[F": "end",
    "OH": "home",
    "OF": "end",
    "[1~": "home",
    "[4~": "end",
    "[3~": "delete",
    "[5~": "pgup",
    "[6~": "pgdown",
    "[Z": "shift+tab",
}

_CONTROL = {
    "\r": "enter",
    "\n": "enter",
    "\t": "tab",
    "\x03": "ctrl+c",
    "\x7f": "backspace",
    "\x08": "backspace",
}


def decode_key(data: str) -> str:
    """Map raw terminal input to a key name ("j", "up", "enter", "esc", ...)."""
    if data.startswith("\x1b"):
        rest = data[1:]
        if not rest:
            return "esc"
        return _ESCAPES.get(rest, "")
    return _CONTROL.get(data, data)


class KeyReader:
    def __init__(self, fd: Optional[int] = None):
        self.fd = sys.stdin.fileno() if fd is None else fd

    @contextmanager
    def cbreak(self) -> Iterator[None]:
        old = termios.tcgetattr(self.fd)
        try:
            tty.setcbreak(self.fd)
            yield
        finally:
            termios.tcsetattr(self.fd, termios.TCSADRAIN, old)

    def _ready(self) -> bool:
        return bool(select.select([self.fd], [], [], ESCAPE_TIMEOUT)[0])

    def read(self) -> str:
        first = os.read(self.fd, 1)
        if first == b"\x1b":
            seq = b""
            while self._ready():
                seq += os.read(self.fd, 1)
                if len(seq) > 1 and (seq[-1:].isalpha() or seq.endswith(b"~")):
                    break
            return decode_key("\x1b" + seq.decode(errors="ignore"))

        data = first
        # UTF-8 lead byte: pull in the continuation bytes
        if first and first[0] >= 0xC0:
            extra = 1 if first[0] < 0xE0 else 2 if first[0] < 0xF0 else 3
            data += os.read(self.fd, extra)
        return decode_key(data.decode(errors="ignore"))


class Browser(Protocol):
    def resize(self, width: int, height: int) -> None: ...

    def handle_key(self, key: str) -> Action: ...

    def render(self) -> RenderableType: ...


def run_browser(browser: Browser, console: Optional[Console] = None, reader: Optional[KeyReader] = None) -> None:
    """Full-screen loop: draw, read one key, dispatch, until the browser asks to quit."""
    console = console or Console()
    reader = reader or KeyReader()
    with reader.cbreak(), console.screen() as screen:
        while True:
            size = console.size
            browser.resize(size.width, size.height)
            screen.update(browser.render())
            try:
                key = reader.read()
            except KeyboardInterrupt:
                return
            if browser.handle_key(key) == Action.QUIT:
                return


class TerminalPrompter:
    """Runs a setup prompt inline until it is submitted or cancelled."""

    def __init__(self, console: Optional[Console] = None, reader: Optional[KeyReader] = None):
        self.console = console or Console()
        self.reader = reader or KeyReader()

    def __call__(self, prompt: Prompt) -> Prompt:
        with self.reader.cbreak(), Live(
            prompt.render(), console=self.console, auto_refresh=False, transient=True
        ) as live:
            while not prompt.finished:
                try:
                    key = self.reader.read()
                except KeyboardInterrupt:
                    prompt.cancelled = True
                    break
                if key:
                    prompt.handle(event_for_key(key))
                live.update(prompt.render(), refresh=True)
        logger.debug("Prompt %s finished (cancelled=%s)", type(prompt).__name__, prompt.cancelled)
        return prompt
