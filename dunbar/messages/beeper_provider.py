"""Beeper Desktop API message provider (full snapshot on every sync)."""

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, Optional
from urllib.parse import quote

import httpx
from pydantic import BaseModel

from ..config import DunbarConfig
from ..credentials import load_credentials, save_credentials
from ..errors import ConfigError, ProviderError
from .base import MessageSource, ProgressFn
from .models import Attachment, Conversation, Message

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:23373"
PAGE_LIMIT = 100
SENSITIVE_FIELDS = ["access_token"]


class BeeperCredentials(BaseModel):
    access_token: str = ""


def _parse_time(value: Any) -> datetime:
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, timezone.utc)
    if not value:
        return datetime.fromtimestamp(0, timezone.utc)
    ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)


def _truncate(s: str, max_len: int) -> str:
    if len(s) <= max_len:
        return s
    return s[: max_len - 3] + "..."


def chat_to_conversation(chat: dict) -> Conversation:
    participants = chat.get("participants") or {}
    items = participants.get("items") or []
    return Conversation(
        id=chat.get("id", ""),
        account_id=chat.get("accountID", ""),
        platform=chat.get("network", ""),
        title=chat.get("title", ""),
        type=chat.get("type", "single"),
        participant_uids=[p.get("id", "") for p in items],
        participant_count=participants.get("total", len(items)),
        unread_count=chat.get("unreadCount", 0),
        last_activity=_parse_time(chat.get("lastActivity")),
        is_archived=chat.get("isArchived", False),
        is_muted=chat.get("isMuted", False),
        is_pinned=chat.get("isPinned", False),
    )


def convert_attachment(raw: dict) -> Attachment:
    size = raw.get("size") or {}
    return Attachment(
        type=raw.get("type", "unknown"),
        src_url=raw.get("srcURL", ""),
        file_name=raw.get("fileName", ""),
        file_size=raw.get("fileSize", 0) or 0,
        mime_type=raw.get("mimeType", ""),
        duration=raw.get("duration", 0) or 0,
        width=int(size.get("width", 0) or 0),
        height=int(size.get("height", 0) or 0),
        is_gif=raw.get("isGif", False),
        is_sticker=raw.get("isSticker", False),
        is_voice_note=raw.get("isVoiceNote", False),
    )


def to_message(raw: dict, chat: Conversation) -> Message:
    sender = raw.get("senderID", "")
    return Message(
        id=raw.get("id", ""),
        contact_uid=sender,
        conversation_uid=raw.get("chatID", chat.id),
        chat_title=chat.title,
        timestamp=_parse_time(raw.get("timestamp")),
        sender_uid=sender,
        sender_name=raw.get("senderName", ""),
        content=raw.get("text", "") or "",
        platform=chat.platform,
        platform_id=raw.get("id", ""),
        is_sent=raw.get("isSender", False),
        attachments=[convert_attachment(a) for a in raw.get("attachments") or []],
        sort_key=str(raw.get("sortKey", "")),
    )


class BeeperProvider(MessageSource):
    name = "beeper"
    supports_incremental_sync = False

    def __init__(
        self,
        creds_path: Path,
        key_file: Path,
        base_url: str = "",
        client: Optional[httpx.Client] = None,
    ):
        self.creds_path = creds_path
        self.key_file = key_file
        self.base_url = (base_url or os.environ.get("BEEPER_API_URL", "") or DEFAULT_BASE_URL).rstrip("/")
        self._client = client or httpx.Client(timeout=60)
        self.access_token = ""

    @classmethod
    def from_config(cls, cfg: DunbarConfig, client: Optional[httpx.Client] = None) -> "BeeperProvider":
        return cls(cfg.beeper_creds_path, cfg.key_path, client=client)

    def load_credentials(self) -> Optional[BeeperCredentials]:
        return load_credentials(self.creds_path, BeeperCredentials, self.key_file, SENSITIVE_FIELDS)

    def save_credentials(self, creds: BeeperCredentials) -> None:
        save_credentials(self.creds_path, creds, self.key_file, SENSITIVE_FIELDS)

    def initialize(self, access_token: str = "") -> None:
        token = access_token
        if not token:
            creds = self.load_credentials()
            token = creds.access_token if creds else ""
        if not token:
            token = os.environ.get("BEEPER_ACCESS_TOKEN", "")
        if not token:
            raise ConfigError("no Beeper credentials found. Run 'dunbar messages init' first")
        self.access_token = token

    def _get(self, path: str, params: Optional[dict] = None) -> dict:
        try:
            resp = self._client.get(
                f"{self.base_url}{path}",
                headers={"Authorization": f"Bearer {self.access_token}"},
                params=params,
            )
        except httpx.HTTPError as e:
            raise ProviderError(f"Beeper API request failed: {e}") from e
        if resp.status_code != 200:
            raise ProviderError(
                f"Beeper API request {path} failed with status {resp.status_code}: {resp.text[:300]}",
                status_code=resp.status_code,
                body=resp.text,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderError(f"Beeper API request {path} returned invalid JSON: {e}", body=resp.text) from e

    def _paginate(self, path: str) -> Iterator[dict]:
        """Walk a cursor-paginated listing from newest to oldest."""
        cursor = ""
        while True:
            params: dict[str, Any] = {"limit": PAGE_LIMIT}
            if cursor:
                params["cursor"] = cursor
                params["direction"] = "before"
            page = self._get(path, params)
            yield from page.get("items") or []
            cursor = page.get("oldestCursor") or ""
            if not page.get("hasMore") or not cursor:
                break

    def verify(self) -> None:
        """Cheap authenticated call used to test a freshly entered token."""
        self._get("/v1/accounts")

    def sync(
        self, progress: Optional[ProgressFn] = None
    ) -> tuple[list[Conversation], list[Message]]:
        report = progress or (lambda _text: None)
        conversations: list[Conversation] = []
        messages: list[Message] = []

        report("Fetching conversations from Beeper...")
        for chat_raw in self._paginate("/v1/chats"):
            conv = chat_to_conversation(chat_raw)
            conversations.append(conv)
            label = f"[{len(conversations)}] Syncing: {_truncate(conv.title, 50)} ({conv.platform})"
            report(label)

            count = 0
            try:
                for raw in self._paginate(f"/v1/chats/{quote(conv.id, safe='')}/messages"):
                    messages.append(to_message(raw, conv))
                    count += 1
                    if count % 10 == 0:
                        report(f"{label} - {count} messages")
            except ProviderError as e:
                raise e.wrap(f"failed to fetch messages for chat {conv.id}") from e
            logger.debug("Fetched %d messages for chat %s", count, conv.id)

        logger.info(
            "Beeper sync fetched %d conversations with %d messages",
            len(conversations), len(messages),
        )
        return conversations, messages
