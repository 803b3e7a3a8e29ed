"""
Tests for the Beeper Desktop API provider.

Covers:
- Chat and message normalisation
- Cursor pagination for chats and messages
- Token resolution order: explicit, credentials file, environment
- Progress reporting and error context
"""
import json
from datetime import datetime, timezone

import httpx
import pytest

from dunbar.errors import ConfigError, ProviderError
from dunbar.messages.beeper_provider import (
    DEFAULT_BASE_URL,
    BeeperCredentials,
    BeeperProvider,
    chat_to_conversation,
    to_message,
)


def _chat(chat_id: str, title: str, network: str = "whatsapp") -> dict:
    return {
        "id": chat_id,
        "accountID": "acct-1",
        "network": network,
        "title": title,
        "type": "group",
        "participants": {"items": [{"id": "u-alice"}, {"id": "u-bob"}], "total": 2},
        "unreadCount": 1,
        "lastActivity": "2024-03-10T12:00:00Z",
        "isPinned": True,
    }


def _msg(msg_id: str, chat_id: str, sender: str = "u-alice", text: str = "hi", **extra) -> dict:
    raw = {
        "id": msg_id,
        "chatID": chat_id,
        "senderID": sender,
        "senderName": sender.split("-")[-1].title(),
        "timestamp": "2024-03-10T12:00:00Z",
        "text": text,
        "sortKey": msg_id,
    }
    raw.update(extra)
    return raw


class FakeBeeper:
    """A tiny Beeper Desktop API with cursor paging."""

    def __init__(self, chats, messages, page_size=2):
        self.chats = chats
        self.messages = messages  # chat id -> list of raw messages, newest first
        self.page_size = page_size
        self.requests: list[httpx.Request] = []
        self.fail_chat = ""

    def _page(self, items, request):
        start = int(request.url.params.get("cursor", "0"))
        page = items[start : start + self.page_size]
        end = start + len(page)
        return httpx.Response(
            200,
            json={"items": page, "hasMore": end < len(items), "oldestCursor": str(end)},
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if path == "/v1/accounts":
            return httpx.Response(200, json=[{"accountID": "acct-1"}])
        if path == "/v1/chats":
            return self._page(self.chats, request)
        chat_id = path.split("/")[3]
        if chat_id == self.fail_chat:
            return httpx.Response(500, text="database locked")
        return self._page(self.messages.get(chat_id, []), request)


def _provider(cfg, api: FakeBeeper, token: str = "tok") -> BeeperProvider:
    client = httpx.Client(transport=httpx.MockTransport(api))
    provider = BeeperProvider(cfg.beeper_creds_path, cfg.key_path, client=client)
    if token:
        provider.initialize(access_token=token)
    return provider


class TestNormalisation:
    """Raw Beeper payloads to Conversation and Message."""

    def test_chat_to_conversation(self):
        conv = chat_to_conversation(_chat("chat1", "Family"))
        assert conv.id == "chat1"
        assert conv.platform == "whatsapp"
        assert conv.participant_uids == ["u-alice", "u-bob"]
        assert conv.participant_count == 2
        assert conv.unread_count == 1
        assert conv.is_pinned
        assert conv.last_activity == datetime(2024, 3, 10, 12, tzinfo=timezone.utc)

    def test_message_contact_uid_is_sender(self):
        conv = chat_to_conversation(_chat("chat1", "Family"))
        msg = to_message(_msg("m1", "chat1", sender="u-bob", isSender=True), conv)
        assert msg.contact_uid == "u-bob"
        assert msg.sender_uid == "u-bob"
        assert msg.conversation_uid == "chat1"
        assert msg.chat_title == "Family"
        assert msg.platform == "whatsapp"
        assert msg.is_sent

    def test_millisecond_timestamps(self):
        conv = chat_to_conversation(_chat("chat1", "Family"))
        msg = to_message(_msg("m1", "chat1", timestamp=1710072000000), conv)
        assert msg.timestamp == datetime(2024, 3, 10, 12, tzinfo=timezone.utc)

    def test_attachments(self):
        conv = chat_to_conversation(_chat("chat1", "Family"))
        raw = _msg(
            "m1",
            "chat1",
            text="",
            attachments=[{"type": "img", "fileName": "a.jpg", "size": {"width": 640, "height": 480}, "isGif": True}],
        )
        msg = to_message(raw, conv)
        assert msg.content == ""
        assert msg.attachments[0].type == "img"
        assert (msg.attachments[0].width, msg.attachments[0].height) == (640, 480)
        assert msg.attachments[0].is_gif


class TestInitialize:
    """Access token resolution."""

    def test_explicit_token_wins(self, cfg):
        provider = _provider(cfg, FakeBeeper([], {}), token="")
        provider.save_credentials(BeeperCredentials(access_token="from-file"))
        provider.initialize(access_token="explicit")
        assert provider.access_token == "explicit"

    def test_credentials_file(self, cfg, monkeypatch):
        monkeypatch.setenv("BEEPER_ACCESS_TOKEN", "from-env")
        provider = _provider(cfg, FakeBeeper([], {}), token="")
        provider.save_credentials(BeeperCredentials(access_token="from-file"))
        provider.initialize()
        assert provider.access_token == "from-file"

    def test_environment_fallback(self, cfg, monkeypatch):
        monkeypatch.setenv("BEEPER_ACCESS_TOKEN", "from-env")
        provider = _provider(cfg, FakeBeeper([], {}), token="")
        provider.initialize()
        assert provider.access_token == "from-env"

    def test_no_token_anywhere(self, cfg):
        provider = _provider(cfg, FakeBeeper([], {}), token="")
        with pytest.raises(ConfigError, match="dunbar messages init"):
            provider.initialize()

    def test_saved_token_is_encrypted(self, cfg):
        provider = _provider(cfg, FakeBeeper([], {}), token="")
        provider.save_credentials(BeeperCredentials(access_token="secret-token"))
        stored = json.loads(cfg.beeper_creds_path.read_text())
        assert stored["access_token"].startswith("ENC:")
        assert provider.load_credentials().access_token == "secret-token"

    def test_base_url_from_environment(self, cfg, monkeypatch):
        monkeypatch.setenv("BEEPER_API_URL", "http://127.0.0.1:9999/")
        provider = BeeperProvider(cfg.beeper_creds_path, cfg.key_path)
        assert provider.base_url == "http://127.0.0.1:9999"
        assert BeeperProvider(cfg.beeper_creds_path, cfg.key_path, base_url=DEFAULT_BASE_URL).base_url == DEFAULT_BASE_URL


class TestSync:
    """Full snapshot fetch across paginated chats and messages."""

    def test_fetches_every_page(self, cfg):
        api = FakeBeeper(
            chats=[_chat("chat1", "Family"), _chat("chat2", "Work", "slack"), _chat("chat3", "Book club")],
            messages={
                "chat1": [_msg(f"a{i}", "chat1") for i in range(5)],
                "chat2": [_msg("b0", "chat2")],
            },
        )
        conversations, messages = _provider(cfg, api).sync()

        assert [c.id for c in conversations] == ["chat1", "chat2", "chat3"]
        assert len(messages) == 6
        assert {m.conversation_uid for m in messages} == {"chat1", "chat2"}
        assert all(r.headers["Authorization"] == "Bearer tok" for r in api.requests)

    def test_older_pages_request_before_cursor(self, cfg):
        api = FakeBeeper(chats=[_chat("chat1", "Family")], messages={"chat1": [_msg(f"a{i}", "chat1") for i in range(3)]})
        _provider(cfg, api).sync()
        paged = [r for r in api.requests if "cursor" in r.url.params]
        assert paged
        assert all(r.url.params["direction"] == "before" for r in paged)

    def test_progress_labels(self, cfg):
        api = FakeBeeper(
            chats=[_chat("chat1", "Family")],
            messages={"chat1": [_msg(f"a{i}", "chat1") for i in range(12)]},
            page_size=5,
        )
        seen = []
        _provider(cfg, api).sync(progress=seen.append)
        assert seen[0] == "Fetching conversations from Beeper..."
        assert "[1] Syncing: Family (whatsapp)" in seen
        assert "[1] Syncing: Family (whatsapp) - 10 messages" in seen

    def test_message_failure_names_the_chat(self, cfg):
        api = FakeBeeper(chats=[_chat("chat1", "Family"), _chat("chat2", "Work")], messages={})
        api.fail_chat = "chat2"
        with pytest.raises(ProviderError, match="failed to fetch messages for chat chat2") as exc_info:
            _provider(cfg, api).sync()
        assert exc_info.value.status_code == 500

    def test_verify_hits_accounts(self, cfg):
        api = FakeBeeper([], {})
        _provider(cfg, api).verify()
        assert api.requests[0].url.path == "/v1/accounts"

    def test_unauthorized(self, cfg):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(401, text="bad token")))
        provider = BeeperProvider(cfg.beeper_creds_path, cfg.key_path, client=client)
        provider.initialize(access_token="wrong")
        with pytest.raises(ProviderError) as exc_info:
            provider.verify()
        assert exc_info.value.status_code == 401

    def test_desktop_app_not_running(self, cfg):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        provider = BeeperProvider(cfg.beeper_creds_path, cfg.key_path, client=httpx.Client(transport=httpx.MockTransport(handler)))
        provider.initialize(access_token="tok")
        with pytest.raises(ProviderError, match="Beeper API request failed: connection refused"):
            provider.sync()

    def test_invalid_json(self, cfg):
        client = httpx.Client(transport=httpx.MockTransport(lambda request: httpx.Response(200, text="not json")))
        provider = BeeperProvider(cfg.beeper_creds_path, cfg.key_path, client=client)
        provider.initialize(access_token="tok")
        with pytest.raises(ProviderError, match="returned invalid JSON"):
            provider.verify()
