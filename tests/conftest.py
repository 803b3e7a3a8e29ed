"""
Shared fixtures for the dunbar test suite.

Everything runs against a temporary data directory. Providers are either
in-memory fakes or the real HTTP providers wired to an ``httpx.MockTransport``,
so no test talks to Google or Beeper.
"""
from __future__ import annotations

import io
from datetime import datetime, timedelta
from typing import Optional

import pytest
from rich.console import Console

from dunbar.config import DunbarConfig
from dunbar.contacts.base import ContactSource
from dunbar.contacts.manager import ContactManager
from dunbar.contacts.models import Contact
from dunbar.contacts.storage import ContactStore
from dunbar.errors import ProviderError
from dunbar.messages.base import MessageSource
from dunbar.messages.db import MessageStore
from dunbar.messages.manager import MessageManager
from dunbar.messages.models import Conversation, Message


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's own dunbar environment out of the tests."""
    for name in ("DUNBAR_DIR", "BEEPER_ACCESS_TOKEN", "BEEPER_API_URL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def cfg(tmp_path) -> DunbarConfig:
    config = DunbarConfig(dunbar_dir=tmp_path / "dunbar")
    config.ensure_dir()
    config.contacts_dir.mkdir(parents=True, exist_ok=True)
    return config


@pytest.fixture
def quiet_console() -> Console:
    return Console(file=io.StringIO(), width=100)


# ── Fake providers ──────────────────────────────────────────────────────

class FakeContactSource(ContactSource):
    name = "fake"

    def __init__(self, remote: Optional[list[Contact]] = None, incremental: bool = False):
        self.remote = remote or []
        self.supports_incremental_sync = incremental
        self.deleted: list[str] = []
        self.calls: list[tuple[str, str]] = []
        self.fail_write = False
        self.fail_delete = False
        self.fail_fetch = False
        self.commits = 0

    def fetch_all(self) -> list[Contact]:
        self.calls.append(("fetch_all", ""))
        if self.fail_fetch:
            raise ProviderError("fetch exploded", status_code=500)
        return [c.model_copy(deep=True) for c in self.remote]

    def write_one(self, contact: Contact) -> None:
        self.calls.append(("write_one", contact.uid))
        if self.fail_write:
            raise ProviderError("write rejected", status_code=412, body="etag mismatch")

    def delete_one(self, uid: str) -> None:
        self.calls.append(("delete_one", uid))
        if self.fail_delete:
            raise ProviderError("delete rejected", status_code=500)

    def deleted_uids(self) -> list[str]:
        return list(self.deleted)

    def commit_sync_token(self) -> None:
        self.commits += 1


class FakeMessageSource(MessageSource):
    name = "fake"

    def __init__(self, conversations=None, messages=None):
        self.conversations: list[Conversation] = conversations or []
        self.messages: list[Message] = messages or []
        self.error: Optional[Exception] = None

    def sync(self, progress=None):
        if progress:
            progress("Fetching conversations...")
        if self.error:
            raise self.error
        return list(self.conversations), list(self.messages)


@pytest.fixture
def contact_source() -> FakeContactSource:
    return FakeContactSource()


@pytest.fixture
def contact_store(cfg) -> ContactStore:
    return ContactStore(cfg.people_dir)


@pytest.fixture
def contact_manager(contact_source, contact_store) -> ContactManager:
    return ContactManager(contact_source, contact_store)


@pytest.fixture
def message_source() -> FakeMessageSource:
    return FakeMessageSource()


@pytest.fixture
def message_store(cfg):
    store = MessageStore(cfg.messages_db_path)
    yield store
    store.close()


@pytest.fixture
def message_manager(message_source, message_store) -> MessageManager:
    return MessageManager(message_source, message_store)


# ── Factories ───────────────────────────────────────────────────────────

@pytest.fixture
def base_time() -> datetime:
    """Local noon, far enough from midnight that small offsets stay on the same day."""
    return datetime(2024, 3, 10, 12, 0).astimezone()


@pytest.fixture
def make_message(base_time):
    counter = {"n": 0}

    def _make(
        minutes: float = 0,
        days: int = 0,
        sender: str = "alice",
        content: str = "hello",
        conversation: str = "chat1",
        **kwargs,
    ) -> Message:
        counter["n"] += 1
        n = counter["n"]
        fields = dict(
            id=f"m{n}",
            contact_uid=sender,
            conversation_uid=conversation,
            chat_title="Chat",
            timestamp=base_time + timedelta(days=days, minutes=minutes),
            sender_uid=sender,
            sender_name=sender.title(),
            content=content,
            platform="whatsapp",
            sort_key=f"{n:06d}",
        )
        fields.update(kwargs)
        return Message(**fields)

    return _make


@pytest.fixture
def make_conversation(base_time):
    def _make(conv_id: str = "chat1", title: str = "Family", hours: float = 0, **kwargs) -> Conversation:
        fields = dict(
            id=conv_id,
            title=title,
            platform="whatsapp",
            participant_uids=["alice", "bob"],
            participant_count=2,
            last_activity=base_time + timedelta(hours=hours),
        )
        fields.update(kwargs)
        return Conversation(**fields)

    return _make
