"""SQLite message store.

Conversations and messages are written with ``session.merge`` so a re-sync
overwrites rows by primary key instead of appending duplicates. List-valued
fields are stored as JSON text. Timestamps are converted to UTC on the way
in and come back as timezone-aware UTC datetimes.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from sqlalchemy import Column, DateTime, func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Field, Session, SQLModel, col, create_engine, select

from ..errors import NotFoundError, PersistError
from .models import Attachment, Conversation, Message

logger = logging.getLogger(__name__)


class ConversationRow(SQLModel, table=True):
    __tablename__ = "conversations"

    id: str = Field(primary_key=True)
    account_id: str = ""
    platform: str = ""
    title: str = ""
    type: str = "single"
    participant_uids: str = "[]"  # JSON list
    participant_count: int = 0
    unread_count: int = 0
    last_activity: datetime = Field(sa_column=Column(DateTime(timezone=True), index=True, nullable=False))
    is_archived: bool = False
    is_muted: bool = False
    is_pinned: bool = False


class MessageRow(SQLModel, table=True):
    __tablename__ = "messages"

    id: str = Field(primary_key=True)
    contact_uid: str = Field(default="", index=True)
    conversation_uid: str = Field(default="", index=True)
    chat_title: str = ""
    timestamp: datetime = Field(sa_column=Column(DateTime(timezone=True), index=True, nullable=False))
    sender_uid: str = ""
    sender_name: str = ""
    content: str = ""
    platform: str = ""
    platform_id: str = ""
    is_sent: bool = False
    attachments: str = "[]"  # JSON list
    sort_key: str = ""


def _to_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _from_utc(ts: datetime) -> datetime:
    # SQLite hands back naive values even for timezone-aware columns
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _conversation_row(conv: Conversation) -> ConversationRow:
    data = conv.model_dump(exclude={"participant_uids", "last_activity"})
    return ConversationRow(
        **data,
        participant_uids=json.dumps(conv.participant_uids),
        last_activity=_to_utc(conv.last_activity),
    )


def _conversation(row: ConversationRow) -> Conversation:
    data = row.model_dump(exclude={"participant_uids", "last_activity"})
    return Conversation(
        **data,
        participant_uids=json.loads(row.participant_uids or "[]"),
        last_activity=_from_utc(row.last_activity),
    )


def _message_row(msg: Message) -> MessageRow:
    data = msg.model_dump(exclude={"attachments", "timestamp"})
    return MessageRow(
        **data,
        attachments=json.dumps([a.model_dump() for a in msg.attachments]),
        timestamp=_to_utc(msg.timestamp),
    )


def _message(row: MessageRow) -> Message:
    data = row.model_dump(exclude={"attachments", "timestamp"})
    return Message(
        **data,
        attachments=[Attachment(**a) for a in json.loads(row.attachments or "[]")],
        timestamp=_from_utc(row.timestamp),
    )


class MessageStore:
    def __init__(self, db_path: Path):
        self.db_path = db_path
        try:
            self.engine = create_engine(f"sqlite:///{db_path}", echo=False)
            SQLModel.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            logger.error("Failed to open message database %s: %s", db_path, e)
            raise PersistError(f"failed to open message database {db_path}: {e}") from e

    def _session(self) -> Session:
        return Session(self.engine)

    def save_conversations(self, conversations: list[Conversation]) -> None:
        try:
            with self._session() as session:
                for conv in conversations:
                    session.merge(_conversation_row(conv))
                session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to save conversations: %s", e)
            raise PersistError(f"failed to save conversations: {e}") from e

    def save_messages(self, messages: list[Message]) -> None:
        try:
            with self._session() as session:
                for msg in messages:
                    session.merge(_message_row(msg))
                session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to save messages: %s", e)
            raise PersistError(f"failed to save messages: {e}") from e

    def _messages_where(self, column, value: str) -> list[Message]:
        statement = (
            select(MessageRow)
            .where(column == value)
            .order_by(col(MessageRow.timestamp), col(MessageRow.sort_key))
        )
        try:
            with self._session() as session:
                return [_message(row) for row in session.exec(statement).all()]
        except SQLAlchemyError as e:
            raise PersistError(f"failed to query messages: {e}") from e

    def messages_for_contact(self, contact_uid: str) -> list[Message]:
        return self._messages_where(col(MessageRow.contact_uid), contact_uid)

    def messages_for_conversation(self, conversation_uid: str) -> list[Message]:
        """Messages of one conversation, oldest first, ties broken by sort key."""
        return self._messages_where(col(MessageRow.conversation_uid), conversation_uid)

    def last_contact_date(self, contact_uid: str) -> Optional[datetime]:
        statement = select(func.max(MessageRow.timestamp)).where(
            MessageRow.contact_uid == contact_uid
        )
        try:
            with self._session() as session:
                latest = session.exec(statement).one()
        except SQLAlchemyError as e:
            raise PersistError(f"failed to query last contact date: {e}") from e
        return _from_utc(latest) if latest else None

    def get_conversation(self, conversation_uid: str) -> Optional[Conversation]:
        try:
            with self._session() as session:
                row = session.get(ConversationRow, conversation_uid)
        except SQLAlchemyError as e:
            raise PersistError(f"failed to load conversation: {e}") from e
        return _conversation(row) if row else None

    def conversations_for_contact(self, contact_uid: str) -> list[Conversation]:
        # Narrow with LIKE, then confirm membership on the decoded list
        statement = (
            select(ConversationRow)
            .where(col(ConversationRow.participant_uids).contains(json.dumps(contact_uid)))
            .order_by(col(ConversationRow.last_activity).desc())
        )
        try:
            with self._session() as session:
                rows = session.exec(statement).all()
        except SQLAlchemyError as e:
            raise PersistError(f"failed to query conversations: {e}") from e
        conversations = [_conversation(row) for row in rows]
        return [c for c in conversations if contact_uid in c.participant_uids]

    def list_conversations(self) -> list[Conversation]:
        statement = select(ConversationRow).order_by(col(ConversationRow.last_activity).desc())
        try:
            with self._session() as session:
                return [_conversation(row) for row in session.exec(statement).all()]
        except SQLAlchemyError as e:
            raise PersistError(f"failed to list conversations: {e}") from e

    def delete_conversation(self, conversation_uid: str) -> int:
        """Remove a conversation and its messages. Returns the number of messages removed."""
        try:
            with self._session() as session:
                row = session.get(ConversationRow, conversation_uid)
                if row is None:
                    raise NotFoundError(f"conversation not found: {conversation_uid}")
                messages = session.exec(
                    select(MessageRow).where(MessageRow.conversation_uid == conversation_uid)
                ).all()
                for msg in messages:
                    session.delete(msg)
                session.delete(row)
                session.commit()
        except SQLAlchemyError as e:
            logger.error("Failed to delete conversation %s: %s", conversation_uid, e)
            raise PersistError(f"failed to delete conversation {conversation_uid}: {e}") from e
        logger.info("Deleted conversation %s (%d messages)", conversation_uid, len(messages))
        return len(messages)

    def close(self) -> None:
        self.engine.dispose()
