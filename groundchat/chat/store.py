"""In-memory conversation store with targeted change notifications.

Holds every session and its message log. All mutations are synchronous and
complete before listeners run, so observers never see a half-applied write.
Reads hand out deep copies; internal records never leave the store.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from groundchat.chat.errors import MessageFinalizedError, NotFoundError
from groundchat.models.schemas import (
    NEW_CHAT_TITLE,
    Message,
    Part,
    Session,
    Source,
    dedupe_sources,
)

logger = logging.getLogger(__name__)

TITLE_MAX_CHARS = 30
TITLE_ELLIPSIS = "..."


class ChangeKind(str, Enum):
    SESSION_CREATED = "session_created"
    SESSION_DELETED = "session_deleted"
    SESSION_SELECTED = "session_selected"
    MESSAGE_APPENDED = "message_appended"
    MESSAGE_REPLACED = "message_replaced"
    MESSAGE_FINALIZED = "message_finalized"


@dataclass(frozen=True)
class StoreChange:
    """Notification for one completed store mutation.

    Attributes:
        kind: What happened.
        session_id: Session the change applies to.
        message_id: Changed message, for message-level changes.
        message: Copy of the changed message after the mutation.
        title: Session title after the mutation.
    """

    kind: ChangeKind
    session_id: str
    message_id: str | None = None
    message: Message | None = None
    title: str | None = None


Listener = Callable[[StoreChange], None]


def derive_title(text: str) -> str:
    """Build a session title from the first message's text."""
    if not text:
        return NEW_CHAT_TITLE
    if len(text) > TITLE_MAX_CHARS:
        return text[:TITLE_MAX_CHARS] + TITLE_ELLIPSIS
    return text


class ConversationStore:
    """Owns all sessions and their message logs."""

    def __init__(self) -> None:
        self._sessions: list[Session] = []
        self._current_id: str | None = None
        self._titled: set[str] = set()
        self._global_listeners: list[Listener] = []
        self._session_listeners: dict[str, list[Listener]] = {}

    # --- reads -----------------------------------------------------------

    @property
    def current_session_id(self) -> str | None:
        return self._current_id

    def list_sessions(self) -> list[Session]:
        """Return copies of all sessions, newest first."""
        return [session.model_copy(deep=True) for session in self._sessions]

    def get_session(self, session_id: str) -> Session:
        """Return a copy of one session.

        Raises:
            NotFoundError: If the session id is unknown.
        """
        return self._find_session(session_id).model_copy(deep=True)

    def get_message(self, session_id: str, message_id: str) -> Message:
        session = self._find_session(session_id)
        return self._find_message(session, message_id).model_copy(deep=True)

    # --- mutations -------------------------------------------------------

    def create_session(self) -> Session:
        """Create an empty session at the front of the list and make it current."""
        session = Session(title=NEW_CHAT_TITLE)
        self._sessions.insert(0, session)
        self._current_id = session.id
        logger.debug(f"Created session {session.id}")
        self._notify(StoreChange(ChangeKind.SESSION_CREATED, session.id, title=session.title))
        return session.model_copy(deep=True)

    def select_session(self, session_id: str) -> Session:
        session = self._find_session(session_id)
        self._current_id = session.id
        self._notify(StoreChange(ChangeKind.SESSION_SELECTED, session.id, title=session.title))
        return session.model_copy(deep=True)

    def delete_session(self, session_id: str) -> None:
        """Remove a session; the next remaining session becomes current."""
        session = self._find_session(session_id)
        self._sessions.remove(session)
        self._titled.discard(session_id)
        if self._current_id == session_id:
            self._current_id = self._sessions[0].id if self._sessions else None
        logger.debug(f"Deleted session {session_id}")
        self._notify(StoreChange(ChangeKind.SESSION_DELETED, session_id))
        self._session_listeners.pop(session_id, None)

    def append_message(self, session_id: str, message: Message) -> Message:
        """Append a message to a session's log.

        The first message appended to a session freezes its title.

        Raises:
            NotFoundError: If the session id is unknown.
            ValueError: If the session already holds a message with this id.
        """
        session = self._find_session(session_id)
        if any(existing.id == message.id for existing in session.messages):
            raise ValueError(f"Duplicate message id {message.id} in session {session_id}")

        stored = message.model_copy(deep=True)
        session.messages.append(stored)
        if session_id not in self._titled:
            session.title = derive_title(stored.text)
            self._titled.add(session_id)

        snapshot = stored.model_copy(deep=True)
        self._notify(
            StoreChange(
                ChangeKind.MESSAGE_APPENDED,
                session_id,
                message_id=stored.id,
                message=snapshot,
                title=session.title,
            )
        )
        return snapshot

    def replace_message_content(
        self,
        session_id: str,
        message_id: str,
        parts: list[Part],
        sources: list[Source],
    ) -> Message:
        """Replace a message's parts and grounding sources wholesale.

        Raises:
            NotFoundError: If either id is unknown.
            MessageFinalizedError: If the message is already final.
        """
        session = self._find_session(session_id)
        message = self._find_message(session, message_id)
        if message.final:
            raise MessageFinalizedError(f"Message {message_id} is final")

        message.parts = [part.model_copy(deep=True) for part in parts]
        message.grounding_sources = [s.model_copy() for s in dedupe_sources(sources)]

        snapshot = message.model_copy(deep=True)
        self._notify(
            StoreChange(
                ChangeKind.MESSAGE_REPLACED,
                session_id,
                message_id=message_id,
                message=snapshot,
                title=session.title,
            )
        )
        return snapshot

    def finalize_message(self, session_id: str, message_id: str) -> Message:
        """Mark a message immutable.

        Raises:
            NotFoundError: If either id is unknown.
            MessageFinalizedError: If the message is already final.
        """
        session = self._find_session(session_id)
        message = self._find_message(session, message_id)
        if message.final:
            raise MessageFinalizedError(f"Message {message_id} is already final")
        message.final = True

        snapshot = message.model_copy(deep=True)
        self._notify(
            StoreChange(
                ChangeKind.MESSAGE_FINALIZED,
                session_id,
                message_id=message_id,
                message=snapshot,
                title=session.title,
            )
        )
        return snapshot

    # --- observers -------------------------------------------------------

    def subscribe(self, listener: Listener, session_id: str | None = None) -> Callable[[], None]:
        """Register a change listener.

        Args:
            listener: Called with a StoreChange after each mutation.
            session_id: Only deliver changes for this session. All changes
                are delivered when omitted.

        Returns:
            A callable that removes the listener.
        """
        if session_id is None:
            bucket = self._global_listeners
        else:
            bucket = self._session_listeners.setdefault(session_id, [])
        bucket.append(listener)

        def unsubscribe() -> None:
            if listener in bucket:
                bucket.remove(listener)

        return unsubscribe

    def _notify(self, change: StoreChange) -> None:
        listeners = [
            *self._session_listeners.get(change.session_id, ()),
            *self._global_listeners,
        ]
        for listener in listeners:
            try:
                listener(change)
            except Exception:
                logger.exception(f"Store listener failed on {change.kind.value}")

    # --- lookup ----------------------------------------------------------

    def _find_session(self, session_id: str) -> Session:
        for session in self._sessions:
            if session.id == session_id:
                return session
        raise NotFoundError(f"Unknown session: {session_id}")

    @staticmethod
    def _find_message(session: Session, message_id: str) -> Message:
        for message in session.messages:
            if message.id == message_id:
                return message
        raise NotFoundError(f"Unknown message {message_id} in session {session.id}")
