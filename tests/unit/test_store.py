"""Unit tests for ConversationStore."""

import pytest
import pytest_check as check

from groundchat.chat.errors import MessageFinalizedError, NotFoundError
from groundchat.chat.store import ChangeKind, ConversationStore, StoreChange, derive_title
from groundchat.models.schemas import (
    NEW_CHAT_TITLE,
    ImagePart,
    InlineImage,
    Message,
    Role,
    Source,
    TextPart,
)


def user_message(text: str) -> Message:
    return Message(role=Role.USER, parts=[TextPart(text=text)], final=True)


def model_message() -> Message:
    return Message(role=Role.MODEL, parts=[TextPart(text="")])


class TestSessions:
    """Tests for session creation and selection."""

    def test_create_session_defaults(self, store: ConversationStore) -> None:
        """New session has placeholder title, no messages, and becomes current."""
        session = store.create_session()

        check.equal(session.title, NEW_CHAT_TITLE)
        check.equal(session.messages, [])
        check.equal(store.current_session_id, session.id)

    def test_new_sessions_go_to_front(self, store: ConversationStore) -> None:
        first = store.create_session()
        second = store.create_session()

        ids = [s.id for s in store.list_sessions()]
        assert ids == [second.id, first.id]
        assert store.current_session_id == second.id

    def test_no_current_session_before_creation(self, store: ConversationStore) -> None:
        assert store.current_session_id is None
        assert store.list_sessions() == []

    def test_select_session(self, store: ConversationStore) -> None:
        first = store.create_session()
        store.create_session()

        store.select_session(first.id)

        assert store.current_session_id == first.id

    def test_select_unknown_session_raises(self, store: ConversationStore) -> None:
        with pytest.raises(NotFoundError):
            store.select_session("missing")

    def test_delete_current_session_moves_current(self, store: ConversationStore) -> None:
        older = store.create_session()
        newer = store.create_session()

        store.delete_session(newer.id)

        check.equal(store.current_session_id, older.id)
        check.equal([s.id for s in store.list_sessions()], [older.id])

    def test_delete_last_session_clears_current(self, store: ConversationStore) -> None:
        only = store.create_session()

        store.delete_session(only.id)

        assert store.current_session_id is None

    def test_get_unknown_session_raises(self, store: ConversationStore) -> None:
        with pytest.raises(NotFoundError):
            store.get_session("missing")


class TestAppendMessage:
    """Tests for appending messages and title derivation."""

    def test_append_to_unknown_session_raises(self, store: ConversationStore) -> None:
        with pytest.raises(NotFoundError):
            store.append_message("missing", user_message("hi"))

    def test_first_message_sets_title(self, store: ConversationStore, session_id: str) -> None:
        store.append_message(session_id, user_message("Plan a trip"))

        assert store.get_session(session_id).title == "Plan a trip"

    def test_long_first_message_is_truncated(
        self, store: ConversationStore, session_id: str
    ) -> None:
        text = "Tell me everything about the history of Rome"
        store.append_message(session_id, user_message(text))

        assert store.get_session(session_id).title == text[:30] + "..."

    def test_exactly_thirty_chars_not_truncated(self) -> None:
        text = "x" * 30
        assert derive_title(text) == text

    def test_title_frozen_after_first_message(
        self, store: ConversationStore, session_id: str
    ) -> None:
        """Later appends never change the title."""
        store.append_message(session_id, user_message("First question"))
        store.append_message(session_id, model_message())
        store.append_message(session_id, user_message("Second, very different question"))

        assert store.get_session(session_id).title == "First question"

    def test_image_only_first_message_keeps_placeholder_title(
        self, store: ConversationStore, session_id: str
    ) -> None:
        image = InlineImage(mime_type="image/png", data="aGVsbG8=")
        store.append_message(
            session_id, Message(role=Role.USER, parts=[ImagePart(inline_image=image)])
        )
        store.append_message(session_id, user_message("Now with text"))

        assert store.get_session(session_id).title == NEW_CHAT_TITLE

    def test_duplicate_message_id_rejected(
        self, store: ConversationStore, session_id: str
    ) -> None:
        message = user_message("hi")
        store.append_message(session_id, message)

        with pytest.raises(ValueError, match="Duplicate"):
            store.append_message(session_id, message)

        assert len(store.get_session(session_id).messages) == 1


class TestReplaceMessageContent:
    """Tests for the wholesale replace primitive."""

    def test_replaces_parts_and_sources(self, store: ConversationStore, session_id: str) -> None:
        placeholder = store.append_message(session_id, model_message())

        store.replace_message_content(
            session_id,
            placeholder.id,
            [TextPart(text="Hello")],
            [Source(title="A", uri="http://a")],
        )
        store.replace_message_content(
            session_id,
            placeholder.id,
            [TextPart(text="Hello world")],
            [Source(title="B", uri="http://b")],
        )

        message = store.get_message(session_id, placeholder.id)
        check.equal(message.text, "Hello world")
        check.equal([s.uri for s in message.grounding_sources], ["http://b"])

    def test_converges_to_last_text(self, store: ConversationStore, session_id: str) -> None:
        """Monotonic cumulative texts converge to the last one applied."""
        placeholder = store.append_message(session_id, model_message())
        texts = ["", "P", "Pl", "Pla", "Plan", "Plan: Day1..."]

        for text in texts:
            store.replace_message_content(session_id, placeholder.id, [TextPart(text=text)], [])

        assert store.get_message(session_id, placeholder.id).text == texts[-1]

    def test_sources_deduplicated_by_uri(self, store: ConversationStore, session_id: str) -> None:
        placeholder = store.append_message(session_id, model_message())

        store.replace_message_content(
            session_id,
            placeholder.id,
            [TextPart(text="x")],
            [
                Source(title="A", uri="http://a"),
                Source(title="A again", uri="http://a"),
                Source(title="B", uri="http://b"),
            ],
        )

        sources = store.get_message(session_id, placeholder.id).grounding_sources
        assert [(s.title, s.uri) for s in sources] == [("A", "http://a"), ("B", "http://b")]

    def test_unknown_message_raises(self, store: ConversationStore, session_id: str) -> None:
        with pytest.raises(NotFoundError):
            store.replace_message_content(session_id, "missing", [], [])

    def test_unknown_session_raises(self, store: ConversationStore) -> None:
        with pytest.raises(NotFoundError):
            store.replace_message_content("missing", "missing", [], [])

    def test_finalized_message_rejects_replace(
        self, store: ConversationStore, session_id: str
    ) -> None:
        placeholder = store.append_message(session_id, model_message())
        store.replace_message_content(session_id, placeholder.id, [TextPart(text="done")], [])
        store.finalize_message(session_id, placeholder.id)

        with pytest.raises(MessageFinalizedError):
            store.replace_message_content(session_id, placeholder.id, [TextPart(text="x")], [])

        assert store.get_message(session_id, placeholder.id).text == "done"

    def test_finalize_twice_raises(self, store: ConversationStore, session_id: str) -> None:
        placeholder = store.append_message(session_id, model_message())
        store.finalize_message(session_id, placeholder.id)

        with pytest.raises(MessageFinalizedError):
            store.finalize_message(session_id, placeholder.id)


class TestCopyOnRead:
    """Reads must not expose internal records."""

    def test_mutating_read_copy_does_not_leak(
        self, store: ConversationStore, session_id: str
    ) -> None:
        store.append_message(session_id, user_message("hi"))

        copy = store.get_session(session_id)
        copy.title = "hacked"
        copy.messages[0].parts[0].text = "hacked"
        copy.messages.clear()

        fresh = store.get_session(session_id)
        check.equal(fresh.title, "hi")
        check.equal(fresh.messages[0].text, "hi")

    def test_appended_message_is_copied_in(
        self, store: ConversationStore, session_id: str
    ) -> None:
        message = user_message("hi")
        store.append_message(session_id, message)

        message.parts[0].text = "changed"

        assert store.get_session(session_id).messages[0].text == "hi"

    def test_list_sessions_is_restartable(self, store: ConversationStore) -> None:
        store.create_session()
        store.create_session()

        first = [s.id for s in store.list_sessions()]
        second = [s.id for s in store.list_sessions()]

        assert first == second


class TestSubscriptions:
    """Tests for targeted change notifications."""

    def test_session_listener_sees_only_its_session(self, store: ConversationStore) -> None:
        watched = store.create_session()
        other = store.create_session()
        changes: list[StoreChange] = []
        store.subscribe(changes.append, session_id=watched.id)

        store.append_message(other.id, user_message("elsewhere"))
        store.append_message(watched.id, user_message("here"))

        assert [c.session_id for c in changes] == [watched.id]
        assert changes[0].kind == ChangeKind.MESSAGE_APPENDED

    def test_replace_delivers_changed_message_copy(
        self, store: ConversationStore, session_id: str
    ) -> None:
        placeholder = store.append_message(session_id, model_message())
        changes: list[StoreChange] = []
        store.subscribe(changes.append, session_id=session_id)

        store.replace_message_content(session_id, placeholder.id, [TextPart(text="Hi")], [])

        change = changes[-1]
        check.equal(change.kind, ChangeKind.MESSAGE_REPLACED)
        check.equal(change.message_id, placeholder.id)
        check.equal(change.message.text, "Hi")

        change.message.parts[0].text = "tampered"
        check.equal(store.get_message(session_id, placeholder.id).text, "Hi")

    def test_global_listener_sees_session_creation(self, store: ConversationStore) -> None:
        changes: list[StoreChange] = []
        store.subscribe(changes.append)

        session = store.create_session()

        assert changes == [
            StoreChange(ChangeKind.SESSION_CREATED, session.id, title=NEW_CHAT_TITLE)
        ]

    def test_unsubscribe_stops_notifications(
        self, store: ConversationStore, session_id: str
    ) -> None:
        changes: list[StoreChange] = []
        unsubscribe = store.subscribe(changes.append, session_id=session_id)
        unsubscribe()

        store.append_message(session_id, user_message("hi"))

        assert changes == []

    def test_failing_listener_does_not_break_mutation(
        self, store: ConversationStore, session_id: str
    ) -> None:
        def boom(change: StoreChange) -> None:
            raise RuntimeError("listener bug")

        store.subscribe(boom, session_id=session_id)
        store.append_message(session_id, user_message("hi"))

        assert len(store.get_session(session_id).messages) == 1
