"""Text helpers shared by the browsers. Times are shown in the local timezone."""

from datetime import datetime, timedelta
from typing import Optional

from rich.cells import cell_len


def _local(ts: datetime) -> datetime:
    return ts.astimezone()


def _now(now: Optional[datetime]) -> datetime:
    return _local(now) if now else datetime.now().astimezone()


def same_day(a: datetime, b: datetime) -> bool:
    return _local(a).date() == _local(b).date()


def _clock(ts: datetime) -> str:
    hour = ts.hour % 12 or 12
    return f"{hour}:{ts:%M} {'AM' if ts.hour < 12 else 'PM'}"


def format_time(ts: datetime, now: Optional[datetime] = None) -> str:
    """Clock time today, weekday + time within a week, then "Jan 2" or "Jan 2, 2006"."""
    t, n = _local(ts), _now(now)
    if t.date() == n.date():
        return _clock(t)
    age = n - t
    if timedelta(0) <= age < timedelta(days=7):
        return f"{t:%a} {_clock(t)}"
    if t.year == n.year:
        return f"{t:%b} {t.day}"
    return f"{t:%b} {t.day}, {t.year}"


def format_date_separator(ts: datetime, now: Optional[datetime] = None) -> str:
    t, n = _local(ts), _now(now)
    if t.date() == n.date():
        return "Today"
    if t.date() == (n - timedelta(days=1)).date():
        return "Yesterday"

    # Weeks start on Sunday
    start_of_week = n - timedelta(days=(n.weekday() + 1) % 7)
    if start_of_week < t < n:
        return f"{t:%A}"
    if t.year == n.year:
        return f"{t:%a}, {t:%b} {t.day}"
    return f"{t:%a}, {t:%b} {t.day}, {t.year}"


def format_time_ago(ts: datetime, now: Optional[datetime] = None) -> str:
    t, n = _local(ts), _now(now)
    diff = n - t
    if diff < timedelta(minutes=1):
        return "now"
    if diff < timedelta(hours=1):
        return f"{int(diff.total_seconds() // 60)}m ago"
    if diff < timedelta(hours=24):
        return f"{int(diff.total_seconds() // 3600)}h ago"
    if diff < timedelta(hours=48):
        return "yesterday"
    if diff < timedelta(days=7):
        return f"{diff.days}d ago"
    if diff < timedelta(days=30):
        return f"{diff.days // 7}w ago"
    return f"{t:%b} {t.day}"


_PLATFORM_ICONS = [
    ("whatsapp", "[WA]"),
    ("telegram", "[TG]"),
    ("signal", "[SG]"),
    ("discord", "[DC]"),
    ("slack", "[SK]"),
    ("imessage", "[IM]"),
    ("sms", "[SMS]"),
    ("messenger", "[MSG]"),
    ("instagram", "[IG]"),
    ("twitter", "[X]"),
]


def platform_icon(platform: str) -> str:
    name = platform.lower()
    for needle, icon in _PLATFORM_ICONS:
        if needle in name:
            return icon
    if name == "x":
        return "[X]"
    return "[??]"


def truncate(s: str, max_len: int) -> str:
    if len(s) <= max_len:
        return s
    if max_len <= 3:
        return s[:max_len]
    return s[: max_len - 3] + "..."


def wrap_text(text: str, width: int) -> list[str]:
    """Greedy word wrap measured in terminal cells. Words longer than *width* are kept whole."""
    if width <= 0:
        return [text]
    words = text.split()
    if not words:
        return [""]

    lines = []
    current = words[0]
    for word in words[1:]:
        if cell_len(current) + 1 + cell_len(word) > width:
            lines.append(current)
            current = word
        else:
            current += " " + word
    lines.append(current)
    return lines
