"""Folds a model adapter's event stream into the in-progress model message.

Every event carries the full text so far, so each one replaces the message
content instead of appending to it. Events are applied as they arrive and are
never buffered.
"""

import asyncio
import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable

from groundchat.chat.errors import (
    MessageFinalizedError,
    StreamCancelled,
    StreamError,
)
from groundchat.chat.store import ConversationStore
from groundchat.models.schemas import Message, Part, Source, StreamEvent, TextPart, dedupe_sources

logger = logging.getLogger(__name__)


class StreamReconciler:
    """Applies stream events to one message through the conversation store.

    Args:
        store: Store holding the target message.
        idle_timeout: Seconds to wait for each event before failing the
            stream. None waits forever.
    """

    def __init__(self, store: ConversationStore, idle_timeout: float | None = None) -> None:
        self._store = store
        self._idle_timeout = idle_timeout

    def apply(
        self,
        session_id: str,
        message_id: str,
        event: StreamEvent,
        seen_sources: list[Source] | None = None,
    ) -> Message:
        """Apply a single event and finalize the message if it is terminal.

        Args:
            session_id: Session holding the message.
            message_id: Model message to update.
            event: The event to apply verbatim.
            seen_sources: Sources committed earlier in this exchange. The
                event's sources are merged in (first-seen order, unique uri).

        Returns:
            Copy of the message after the update.

        Raises:
            MessageFinalizedError: If the message was already finalized.
        """
        sources = dedupe_sources([*(seen_sources or []), *event.sources])
        parts: list[Part] = [TextPart(text=event.cumulative_text)]
        message = self._store.replace_message_content(session_id, message_id, parts, sources)
        if event.terminal:
            message = self._store.finalize_message(session_id, message_id)
        return message

    async def reconcile(
        self,
        session_id: str,
        message_id: str,
        events: AsyncIterable[StreamEvent],
        is_current: Callable[[], bool] | None = None,
    ) -> Message:
        """Consume an event stream until it terminates.

        Args:
            session_id: Session holding the message.
            message_id: Placeholder model message to fill.
            events: Adapter events in arrival order.
            is_current: Generation check run before every mutation. When it
                returns False the stream is abandoned without touching the store.

        Returns:
            The finalized message.

        Raises:
            StreamCancelled: If the exchange was invalidated mid-stream.
            StreamError: If the event source failed or timed out.
        """
        iterator = aiter(events)
        committed_parts: list[Part] = []
        committed_sources: list[Source] = []
        committed_length = 0

        try:
            while True:
                try:
                    event = await self._next_event(iterator)
                except StopAsyncIteration:
                    break
                except Exception as e:
                    if is_current is not None and not is_current():
                        raise StreamCancelled("Exchange was cancelled", cause=e) from e
                    self._recommit(session_id, message_id, committed_parts, committed_sources)
                    logger.error(f"Stream for message {message_id} failed: {e!r}")
                    raise StreamError(f"Model stream failed: {e}", cause=e) from e

                if is_current is not None and not is_current():
                    logger.info(f"Discarding stale event for message {message_id}")
                    raise StreamCancelled("Exchange was cancelled")

                if len(event.cumulative_text) < committed_length:
                    logger.warning(
                        f"Cumulative text for message {message_id} shrank "
                        f"from {committed_length} to {len(event.cumulative_text)} chars"
                    )

                message = self.apply(session_id, message_id, event, committed_sources)
                committed_parts = list(message.parts)
                committed_sources = list(message.grounding_sources)
                committed_length = len(event.cumulative_text)

                if event.terminal:
                    return message
        finally:
            await _close(iterator)

        if is_current is not None and not is_current():
            raise StreamCancelled("Exchange was cancelled")
        return self._store.finalize_message(session_id, message_id)

    async def _next_event(self, iterator: AsyncIterator[StreamEvent]) -> StreamEvent:
        if self._idle_timeout is None:
            return await anext(iterator)
        async with asyncio.timeout(self._idle_timeout):
            return await anext(iterator)

    def _recommit(
        self,
        session_id: str,
        message_id: str,
        parts: list[Part],
        sources: list[Source],
    ) -> None:
        """Restore the last committed content and close the message."""
        try:
            if parts:
                self._store.replace_message_content(session_id, message_id, parts, sources)
            self._store.finalize_message(session_id, message_id)
        except MessageFinalizedError:
            logger.debug(f"Message {message_id} already final during stream failure")


async def _close(iterator: AsyncIterator[StreamEvent]) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is None:
        return
    try:
        await aclose()
    except Exception as e:
        logger.debug(f"Error closing event stream: {e!r}")
