"""
Tests for the SQLite message store (append, list, archive).
"""

import pytest

from errors import ValidationError
from services.chat_store import Message, MessageStore, new_message_id


@pytest.fixture
def store(tmp_path):
    return MessageStore(db_path=tmp_path / "chat" / "chat.db")


def _fill(store, session_id, count):
    messages = []
    for i in range(count):
        msg = Message.create("user" if i % 2 == 0 else "assistant", f"message {i}")
        store.append(session_id, msg)
        messages.append(msg)
    return messages


class TestMessage:
    def test_id_format(self):
        msg_id = new_message_id()
        prefix, millis, suffix = msg_id.split("_")
        assert prefix == "msg"
        assert millis.isdigit()
        assert len(suffix) == 8

    def test_create(self):
        msg = Message.create("user", "hello")
        assert msg.role == "user"
        assert msg.content == "hello"
        assert msg.timestamp.endswith("Z")
        assert set(msg.to_dict()) == {"id", "role", "content", "timestamp"}


class TestAppendAndList:
    def test_chronological_order(self, store):
        messages = _fill(store, "s1", 4)
        assert store.list("s1", 50) == messages

    def test_limit_keeps_most_recent(self, store):
        messages = _fill(store, "s1", 6)
        assert store.list("s1", 3) == messages[-3:]

    def test_sessions_are_separate(self, store):
        _fill(store, "s1", 2)
        other = _fill(store, "s2", 1)
        assert store.list("s2", 50) == other
        assert store.count("s1") == 2

    def test_unknown_session_is_empty(self, store):
        assert store.list("nobody", 50) == []

    def test_zero_limit(self, store):
        _fill(store, "s1", 2)
        assert store.list("s1", 0) == []

    def test_invalid_role_rejected(self, store):
        with pytest.raises(ValidationError):
            store.append("s1", Message.create("system", "nope"))
        assert store.count("s1") == 0

    def test_survives_reopen(self, store):
        messages = _fill(store, "s1", 2)
        reopened = MessageStore(db_path=store.db_path)
        assert reopened.list("s1", 50) == messages


class TestArchive:
    def test_archive_moves_everything(self, store):
        messages = _fill(store, "s1", 5)
        moved = store.archive("s1")

        assert moved == 5
        assert store.list("s1", 50) == []
        archived = store.list_archived("s1")
        assert [(a.id, a.role, a.content, a.timestamp) for a in archived] == [
            (m.id, m.role, m.content, m.timestamp) for m in messages
        ]
        assert all(a.archived_at for a in archived)

    def test_archive_leaves_other_sessions(self, store):
        _fill(store, "s1", 2)
        kept = _fill(store, "s2", 2)
        store.archive("s1")
        assert store.list("s2", 50) == kept
        assert store.list_archived("s2") == []

    def test_session_usable_after_archive(self, store):
        _fill(store, "s1", 2)
        store.archive("s1")
        new = _fill(store, "s1", 1)
        assert store.list("s1", 50) == new
        assert len(store.list_archived("s1")) == 2

    def test_archive_empty_session(self, store):
        assert store.archive("nobody") == 0
