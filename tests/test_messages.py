"""
Tests for the SQLite message store and MessageManager.

Covers:
- Overwrite-by-id persistence (re-sync never duplicates)
- Ordering by timestamp with sort key tie-break
- Per-contact queries and last contact date
- Conversation deletion
- Sync error wrapping and all-or-nothing writes on provider failure
"""
from datetime import timedelta, timezone

import pytest

from dunbar.errors import NotFoundError, ProviderError
from dunbar.messages.db import ConversationRow, MessageRow, MessageStore
from dunbar.messages.models import Attachment


class TestMessageStore:
    """Persistence and queries."""

    def test_resave_overwrites_by_id(self, message_store, make_message):
        msg = make_message(content="first")
        message_store.save_messages([msg])
        message_store.save_messages([msg.model_copy(update={"content": "edited"})])
        stored = message_store.messages_for_conversation("chat1")
        assert len(stored) == 1
        assert stored[0].content == "edited"

    def test_ordering_uses_sort_key_for_ties(self, message_store, make_message):
        a = make_message(minutes=5, sort_key="b")
        b = make_message(minutes=5, sort_key="a")
        c = make_message(minutes=0, sort_key="z")
        message_store.save_messages([a, b, c])
        assert [m.id for m in message_store.messages_for_conversation("chat1")] == [c.id, b.id, a.id]

    def test_timestamps_come_back_as_utc(self, message_store, make_message):
        msg = make_message()
        message_store.save_messages([msg])
        stored = message_store.messages_for_conversation("chat1")[0]
        assert stored.timestamp.tzinfo == timezone.utc
        assert stored.timestamp == msg.timestamp

    def test_timestamp_columns_keep_timezone(self):
        assert MessageRow.__table__.c.timestamp.type.timezone
        assert ConversationRow.__table__.c.last_activity.type.timezone

    def test_mixed_offsets_order_by_instant(self, message_store, make_message, base_time):
        later = make_message(timestamp=(base_time + timedelta(minutes=30)).astimezone(timezone(timedelta(hours=9))))
        earlier = make_message(timestamp=base_time.astimezone(timezone(timedelta(hours=-8))))
        message_store.save_messages([later, earlier])
        stored = message_store.messages_for_conversation("chat1")
        assert [m.id for m in stored] == [earlier.id, later.id]
        assert stored[1].timestamp == later.timestamp
        assert all(m.timestamp.tzinfo == timezone.utc for m in stored)

    def test_conversation_activity_is_aware(self, message_store, make_conversation, base_time):
        message_store.save_conversations([make_conversation("c1")])
        conv = message_store.get_conversation("c1")
        assert conv.last_activity.tzinfo == timezone.utc
        assert conv.last_activity == base_time

    def test_attachments_round_trip(self, message_store, make_message):
        msg = make_message(content="", attachments=[Attachment(type="img", file_name="a.jpg", width=10)])
        message_store.save_messages([msg])
        stored = message_store.messages_for_conversation("chat1")[0]
        assert stored.attachments[0].file_name == "a.jpg"
        assert stored.attachments[0].width == 10

    def test_messages_for_contact(self, message_store, make_message):
        message_store.save_messages([make_message(sender="alice"), make_message(sender="bob"), make_message(sender="alice")])
        assert len(message_store.messages_for_contact("alice")) == 2
        assert message_store.messages_for_contact("carol") == []

    def test_last_contact_date(self, message_store, make_message, base_time):
        message_store.save_messages([make_message(sender="alice", days=-3), make_message(sender="alice", days=-1)])
        assert message_store.last_contact_date("alice") == base_time - timedelta(days=1)
        assert message_store.last_contact_date("alice").tzinfo == timezone.utc
        assert message_store.last_contact_date("nobody") is None

    def test_list_conversations_newest_first(self, message_store, make_conversation):
        message_store.save_conversations(
            [make_conversation("old", hours=-5), make_conversation("new", hours=1), make_conversation("mid")]
        )
        assert [c.id for c in message_store.list_conversations()] == ["new", "mid", "old"]

    def test_conversations_for_contact_matches_whole_uid(self, message_store, make_conversation):
        message_store.save_conversations(
            [
                make_conversation("c1", participant_uids=["alice", "bob"]),
                make_conversation("c2", participant_uids=["alice2"]),
            ]
        )
        assert [c.id for c in message_store.conversations_for_contact("alice")] == ["c1"]

    def test_get_conversation(self, message_store, make_conversation):
        message_store.save_conversations([make_conversation("c1", title="Family", participant_uids=["a"])])
        conv = message_store.get_conversation("c1")
        assert conv.title == "Family"
        assert conv.participant_uids == ["a"]
        assert message_store.get_conversation("missing") is None

    def test_delete_conversation_removes_messages(self, message_store, make_conversation, make_message):
        message_store.save_conversations([make_conversation("chat1"), make_conversation("chat2")])
        message_store.save_messages(
            [make_message(conversation="chat1"), make_message(conversation="chat1"), make_message(conversation="chat2")]
        )
        assert message_store.delete_conversation("chat1") == 2
        assert message_store.get_conversation("chat1") is None
        assert message_store.messages_for_conversation("chat1") == []
        assert len(message_store.messages_for_conversation("chat2")) == 1

    def test_delete_unknown_conversation(self, message_store):
        with pytest.raises(NotFoundError, match="conversation not found: nope"):
            message_store.delete_conversation("nope")

    def test_data_survives_reopen(self, cfg, make_message):
        store = MessageStore(cfg.messages_db_path)
        store.save_messages([make_message()])
        store.close()
        reopened = MessageStore(cfg.messages_db_path)
        assert len(reopened.messages_for_conversation("chat1")) == 1
        reopened.close()


class TestMessageManager:
    """Sync orchestration over a fake provider."""

    def test_sync_counts_and_persists(self, message_manager, message_source, make_conversation, make_message):
        message_source.conversations = [make_conversation("chat1")]
        message_source.messages = [make_message(), make_message(minutes=1)]
        result = message_manager.sync()
        assert (result.conversations, result.messages) == (1, 2)
        assert len(message_manager.messages_for_conversation("chat1")) == 2

    def test_resync_does_not_duplicate(self, message_manager, message_source, make_conversation, make_message):
        message_source.conversations = [make_conversation("chat1")]
        message_source.messages = [make_message(), make_message(minutes=1)]
        message_manager.sync()
        message_manager.sync()
        assert len(message_manager.list_conversations()) == 1
        assert len(message_manager.messages_for_conversation("chat1")) == 2

    def test_provider_failure_writes_nothing(self, message_manager, message_source, make_conversation):
        message_source.conversations = [make_conversation("chat1")]
        message_source.error = ProviderError("chats unavailable", status_code=503)
        with pytest.raises(ProviderError, match="failed to sync messages from fake: chats unavailable") as exc_info:
            message_manager.sync()
        assert exc_info.value.status_code == 503
        assert message_manager.list_conversations() == []

    def test_progress_is_forwarded(self, message_manager):
        seen = []
        message_manager.sync(progress=seen.append)
        assert seen == ["Fetching conversations..."]

    def test_delete_conversation_is_local_only(self, message_manager, message_source, make_conversation, make_message):
        message_source.conversations = [make_conversation("chat1")]
        message_source.messages = [make_message()]
        message_manager.sync()

        message_manager.delete_conversation("chat1")
        assert message_manager.get_conversation("chat1") is None

        message_manager.sync()
        assert message_manager.get_conversation("chat1") is not None

    def test_delete_unknown_is_wrapped(self, message_manager):
        with pytest.raises(NotFoundError, match="failed to delete conversation: conversation not found"):
            message_manager.delete_conversation("ghost")

    def test_contact_queries(self, message_manager, message_source, make_conversation, make_message):
        message_source.conversations = [make_conversation("chat1", participant_uids=["alice"])]
        message_source.messages = [make_message(sender="alice")]
        message_manager.sync()
        assert [c.id for c in message_manager.conversations_for_contact("alice")] == ["chat1"]
        assert len(message_manager.messages_for_contact("alice")) == 1
        assert message_manager.last_contact_date("alice") is not None
