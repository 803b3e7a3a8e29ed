"""Message ingestion and read-only queries over the message store."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from ..errors import DunbarError
from .base import MessageSource, ProgressFn
from .db import MessageStore
from .models import Conversation, Message

logger = logging.getLogger(__name__)


@dataclass
class MessageSyncResult:
    conversations: int = 0
    messages: int = 0


class MessageManager:
    def __init__(self, source: MessageSource, store: MessageStore):
        self.source = source
        self.store = store

    def close(self) -> None:
        self.store.close()

    def sync(self, progress: Optional[ProgressFn] = None) -> MessageSyncResult:
        """Fetch the provider snapshot and overwrite stored rows by id.

        Nothing is written when the provider fails. A failed sync is safe to
        retry since persistence never appends.
        """
        try:
            conversations, messages = self.source.sync(progress)
        except DunbarError as e:
            raise e.wrap(f"failed to sync messages from {self.source.name}") from e

        try:
            self.store.save_conversations(conversations)
            self.store.save_messages(messages)
        except DunbarError as e:
            raise e.wrap("failed to save synced messages") from e

        logger.info(
            "Synced %d conversations and %d messages from %s",
            len(conversations), len(messages), self.source.name,
        )
        return MessageSyncResult(conversations=len(conversations), messages=len(messages))

    def messages_for_contact(self, contact_uid: str) -> list[Message]:
        return self.store.messages_for_contact(contact_uid)

    def messages_for_conversation(self, conversation_uid: str) -> list[Message]:
        return self.store.messages_for_conversation(conversation_uid)

    def last_contact_date(self, contact_uid: str) -> Optional[datetime]:
        return self.store.last_contact_date(contact_uid)

    def get_conversation(self, conversation_uid: str) -> Optional[Conversation]:
        return self.store.get_conversation(conversation_uid)

    def conversations_for_contact(self, contact_uid: str) -> list[Conversation]:
        return self.store.conversations_for_contact(contact_uid)

    def list_conversations(self) -> list[Conversation]:
        return self.store.list_conversations()

    def delete_conversation(self, conversation_uid: str) -> None:
        # Local only: the provider keeps the chat and the next sync restores it
        try:
            self.store.delete_conversation(conversation_uid)
        except DunbarError as e:
            raise e.wrap("failed to delete conversation") from e
