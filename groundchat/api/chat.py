"""Session and chat streaming endpoints.

Messages stream back as Server-Sent Events. Each ``data:`` line is a
StreamChunk holding a snapshot of the in-progress model message; the last
chunk has ``done=true``.
"""

import asyncio
import logging
from collections.abc import AsyncGenerator

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import StreamingResponse

from groundchat.chat.errors import NotFoundError, StreamCancelled, StreamError
from groundchat.chat.orchestrator import ChatOrchestrator, Exchange
from groundchat.chat.store import StoreChange
from groundchat.models.schemas import (
    ChatRequest,
    Message,
    Session,
    SessionSummary,
    StreamChunk,
    StreamStatus,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["chat"])


def get_orchestrator(request: Request) -> ChatOrchestrator:
    """Return the application's orchestrator."""
    return request.app.state.orchestrator


def _summary(orchestrator: ChatOrchestrator, session: Session) -> SessionSummary:
    current = orchestrator.store.current_session_id == session.id
    return SessionSummary.from_session(session, current=current)


def _sse(chunk: StreamChunk) -> str:
    return f"data: {chunk.model_dump_json()}\n\n"


def _discard_result(task: asyncio.Task) -> None:
    if not task.cancelled() and task.exception() is not None:
        logger.debug(f"Abandoned exchange ended with {task.exception()!r}")


async def _exchange_events(
    orchestrator: ChatOrchestrator,
    exchange: Exchange,
) -> AsyncGenerator[str]:
    """Run an exchange and relay every update of its model message."""
    store = orchestrator.store
    updates: asyncio.Queue[Message] = asyncio.Queue()

    def on_change(change: StoreChange) -> None:
        if change.message_id == exchange.model_message_id and change.message is not None:
            updates.put_nowait(change.message)

    unsubscribe = store.subscribe(on_change, session_id=exchange.session_id)
    task = asyncio.create_task(orchestrator.run_exchange(exchange))
    try:
        while True:
            if not updates.empty():
                message = updates.get_nowait()
                yield _sse(StreamChunk(message=message, done=False, status=StreamStatus.STREAMING))
                continue
            if task.done():
                break
            getter = asyncio.ensure_future(updates.get())
            try:
                await asyncio.wait({getter, task}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                if not getter.done():
                    getter.cancel()
            if getter.done() and not getter.cancelled():
                message = getter.result()
                yield _sse(StreamChunk(message=message, done=False, status=StreamStatus.STREAMING))

        final_status = StreamStatus.COMPLETE
        error: str | None = None
        try:
            await task
        except StreamCancelled:
            final_status = StreamStatus.CANCELLED
        except StreamError as e:
            final_status = StreamStatus.ERROR
            error = str(e)

        try:
            final_message: Message | None = store.get_message(
                exchange.session_id, exchange.model_message_id
            )
        except NotFoundError:
            final_message = None
        yield _sse(StreamChunk(message=final_message, done=True, status=final_status, error=error))
    finally:
        unsubscribe()
        if not task.done():
            logger.info(f"Client left session {exchange.session_id} mid-stream, cancelling")
            orchestrator.cancel(exchange.session_id)
            task.add_done_callback(_discard_result)


@router.get("", response_model=list[SessionSummary])
async def list_sessions(
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> list[SessionSummary]:
    """List sessions, newest first."""
    return [_summary(orchestrator, s) for s in orchestrator.store.list_sessions()]


@router.post("", response_model=SessionSummary, status_code=status.HTTP_201_CREATED)
async def create_session(
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> SessionSummary:
    """Start a new chat and make it current."""
    session = orchestrator.create_session()
    return _summary(orchestrator, session)


@router.get("/{session_id}", response_model=Session)
async def get_session(
    session_id: str,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> Session:
    return orchestrator.store.get_session(session_id)


@router.post("/{session_id}/select", response_model=SessionSummary)
async def select_session(
    session_id: str,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> SessionSummary:
    session = orchestrator.select_session(session_id)
    return _summary(orchestrator, session)


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    session_id: str,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> Response:
    orchestrator.delete_session(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{session_id}/messages/stream")
async def stream_message(
    session_id: str,
    request: ChatRequest,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    """Send a message and stream the model's reply.

    Args:
        session_id: Target session.
        request: Message text and/or image, and optional model.

    Returns:
        A text/event-stream response of StreamChunks.

    Raises:
        404: Unknown session.
        409: An exchange is already in flight for the session.
        422: Neither text nor image given (rejected by ChatRequest).
    """
    exchange = orchestrator.begin_exchange(
        session_id, request.message, request.image, request.model
    )
    # ChatRequest guarantees text or an image, so an exchange always starts.
    assert exchange is not None

    return StreamingResponse(
        _exchange_events(orchestrator, exchange),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
