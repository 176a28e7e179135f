"""Drives one send-message exchange from user turn to final model message.

State machine per exchange:

    idle -> user_turn_committed -> streaming -> completed | failed | cancelled

At most one exchange is in flight per session. Each exchange carries a
generation token; cancelling a session bumps its generation so a slow stream
can no longer touch the store, and cancels the task reading that stream so
the adapter stream is closed right away.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from groundchat.agent.chat_agent import ModelAdapter, StreamOptions
from groundchat.chat.errors import (
    BusyError,
    MessageFinalizedError,
    StreamCancelled,
    StreamError,
)
from groundchat.chat.reconciler import StreamReconciler
from groundchat.chat.store import ConversationStore
from groundchat.models.schemas import (
    IN_FLIGHT_STATES,
    ExchangeState,
    ImagePart,
    InlineImage,
    Message,
    ModelType,
    Part,
    Role,
    Session,
    TextPart,
)

logger = logging.getLogger(__name__)


@dataclass
class Exchange:
    """One user-message to model-response cycle.

    Attributes:
        session_id: Session the exchange belongs to.
        user_message_id: The committed user turn.
        model_message_id: The placeholder model message being streamed into.
        generation: Token that must match the session's generation for
            stream events to be applied.
        model: Model answering this exchange.
        state: Current lifecycle state.
        error: Failure cause for failed exchanges.
    """

    session_id: str
    user_message_id: str
    model_message_id: str
    generation: int
    model: ModelType
    state: ExchangeState = ExchangeState.USER_TURN_COMMITTED
    error: BaseException | None = field(default=None, repr=False)

    @property
    def in_flight(self) -> bool:
        return self.state in IN_FLIGHT_STATES


class ChatOrchestrator:
    """Coordinates the store, the model adapter and the reconciler.

    Args:
        store: Conversation store shared with the UI.
        adapter: Model adapter, constructed once at startup.
        default_model: Model used when a request names none.
        options: Search grounding and sampling options for every stream.
        stream_timeout: Seconds to wait for each stream event.
    """

    def __init__(
        self,
        store: ConversationStore,
        adapter: ModelAdapter,
        default_model: ModelType = ModelType.FLASH,
        options: StreamOptions | None = None,
        stream_timeout: float | None = None,
    ) -> None:
        self._store = store
        self._adapter = adapter
        self._default_model = default_model
        self._options = options or StreamOptions()
        self._reconciler = StreamReconciler(store, idle_timeout=stream_timeout)
        self._generations: dict[str, int] = {}
        self._exchanges: dict[str, Exchange] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def store(self) -> ConversationStore:
        return self._store

    # --- UI entry points ---------------------------------------------------

    def create_session(self) -> Session:
        return self._store.create_session()

    def select_session(self, session_id: str) -> Session:
        return self._store.select_session(session_id)

    def delete_session(self, session_id: str) -> None:
        """Cancel any in-flight exchange, then remove the session."""
        self._store.get_session(session_id)
        self.cancel(session_id)
        self._store.delete_session(session_id)
        self._exchanges.pop(session_id, None)

    def last_exchange(self, session_id: str) -> Exchange | None:
        return self._exchanges.get(session_id)

    def exchange_state(self, session_id: str) -> ExchangeState:
        exchange = self._exchanges.get(session_id)
        return exchange.state if exchange else ExchangeState.IDLE

    def is_busy(self, session_id: str) -> bool:
        exchange = self._exchanges.get(session_id)
        return exchange is not None and exchange.in_flight

    async def send_message(
        self,
        session_id: str,
        text: str,
        image: InlineImage | None = None,
        model: ModelType | None = None,
    ) -> Exchange | None:
        """Send a user message and stream the model's reply into the store.

        Returns:
            The finished exchange, or None when there was nothing to send.

        Raises:
            NotFoundError: If the session is unknown.
            BusyError: If the session already has an exchange in flight.
            StreamError: If the model stream failed or was cancelled.
        """
        exchange = self.begin_exchange(session_id, text, image, model)
        if exchange is None:
            return None
        return await self.run_exchange(exchange)

    # --- exchange lifecycle ------------------------------------------------

    def begin_exchange(
        self,
        session_id: str,
        text: str,
        image: InlineImage | None = None,
        model: ModelType | None = None,
    ) -> Exchange | None:
        """Commit the user turn and the empty model placeholder.

        Returns None without touching the store when neither text nor an
        image is given.
        """
        text = (text or "").strip()
        if not text and image is None:
            return None

        # Validates the session id before the busy check.
        self._store.get_session(session_id)
        if self.is_busy(session_id):
            raise BusyError(f"Session {session_id} already has an exchange in flight")

        user_parts: list[Part] = []
        if text:
            user_parts.append(TextPart(text=text))
        if image is not None:
            user_parts.append(ImagePart(inline_image=image))

        user_message = self._store.append_message(
            session_id, Message(role=Role.USER, parts=user_parts, final=True)
        )
        model_message = self._store.append_message(
            session_id, Message(role=Role.MODEL, parts=[TextPart(text="")])
        )

        generation = self._generations.get(session_id, 0) + 1
        self._generations[session_id] = generation
        exchange = Exchange(
            session_id=session_id,
            user_message_id=user_message.id,
            model_message_id=model_message.id,
            generation=generation,
            model=model or self._default_model,
        )
        self._exchanges[session_id] = exchange
        logger.info(f"Exchange {generation} started in session {session_id}")
        return exchange

    async def run_exchange(self, exchange: Exchange) -> Exchange:
        """Stream the model reply for a committed exchange.

        Must be awaited inside a task; ``cancel`` cancels that task.

        Raises:
            StreamError: If the stream failed; StreamCancelled if the
                exchange was cancelled before or while streaming.
        """
        if exchange.state == ExchangeState.CANCELLED:
            raise StreamCancelled("Exchange was cancelled before streaming")
        if exchange.state != ExchangeState.USER_TURN_COMMITTED:
            raise StreamError(f"Exchange is {exchange.state.value}, expected user_turn_committed")

        session = self._store.get_session(exchange.session_id)
        history: list[Message] = []
        new_user_parts: list[Part] = []
        for message in session.messages:
            if message.id == exchange.user_message_id:
                new_user_parts = list(message.parts)
                break
            history.append(message)

        exchange.state = ExchangeState.STREAMING
        task = asyncio.current_task()
        if task is not None:
            self._tasks[exchange.session_id] = task

        def is_current() -> bool:
            return self._generations.get(exchange.session_id) == exchange.generation

        try:
            events = self._adapter.open_stream(
                exchange.model, history, new_user_parts, self._options
            )
            await self._reconciler.reconcile(
                exchange.session_id,
                exchange.model_message_id,
                events,
                is_current=is_current,
            )
        except asyncio.CancelledError as e:
            if exchange.state != ExchangeState.CANCELLED:
                # Cancelled from outside: release the session, then propagate.
                self.cancel(exchange.session_id)
                raise
            if task is None or task.uncancel() > 0:
                raise
            exchange.error = e
            logger.info(
                f"Exchange {exchange.generation} in session {exchange.session_id} cancelled"
            )
            raise StreamCancelled("Exchange was cancelled") from e
        except StreamCancelled as e:
            exchange.state = ExchangeState.CANCELLED
            exchange.error = e
            logger.info(
                f"Exchange {exchange.generation} in session {exchange.session_id} cancelled"
            )
            raise
        except StreamError as e:
            self._fail(exchange, e)
            raise
        except Exception as e:
            # Adapter raised while opening the stream.
            self._fail(exchange, e)
            self._close_message(exchange)
            raise StreamError(f"Model stream failed: {e}", cause=e) from e
        finally:
            if task is not None and self._tasks.get(exchange.session_id) is task:
                del self._tasks[exchange.session_id]

        exchange.state = ExchangeState.COMPLETED
        logger.info(f"Exchange {exchange.generation} in session {exchange.session_id} completed")
        return exchange

    def cancel(self, session_id: str) -> bool:
        """Abandon the in-flight exchange of a session.

        The model message keeps its last committed content and becomes final.
        The task streaming the reply is cancelled, which closes the adapter
        stream.

        Returns:
            True if an exchange was cancelled.
        """
        exchange = self._exchanges.get(session_id)
        if exchange is None or not exchange.in_flight:
            return False

        self._generations[session_id] = exchange.generation + 1
        exchange.state = ExchangeState.CANCELLED
        self._close_message(exchange)
        task = self._tasks.pop(session_id, None)
        # A listener cancelling from inside the stream task is handled by the
        # generation check instead.
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        logger.info(f"Cancelled exchange {exchange.generation} in session {session_id}")
        return True

    def _fail(self, exchange: Exchange, error: BaseException) -> None:
        exchange.state = ExchangeState.FAILED
        exchange.error = error
        logger.error(
            f"Exchange {exchange.generation} in session {exchange.session_id} failed: {error}"
        )

    def _close_message(self, exchange: Exchange) -> None:
        try:
            self._store.finalize_message(exchange.session_id, exchange.model_message_id)
        except MessageFinalizedError:
            logger.debug(f"Message {exchange.model_message_id} already final")
