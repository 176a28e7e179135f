"""Conversation core: store, stream reconciliation and exchange orchestration.

Responsibilities:
    - Session and message log ownership with copy-on-read access
    - Folding cumulative-text stream events into the in-progress model message
    - One-exchange-per-session state machine with generation-token cancellation

Framework-free: the API and UI layers observe the store through
subscriptions and drive it through the orchestrator.
"""

from groundchat.chat.errors import (
    BusyError,
    ChatError,
    MessageFinalizedError,
    NotFoundError,
    StreamCancelled,
    StreamError,
)
from groundchat.chat.orchestrator import ChatOrchestrator, Exchange
from groundchat.chat.reconciler import StreamReconciler
from groundchat.chat.store import ChangeKind, ConversationStore, StoreChange

__all__ = [
    "BusyError",
    "ChangeKind",
    "ChatError",
    "ChatOrchestrator",
    "ConversationStore",
    "Exchange",
    "MessageFinalizedError",
    "NotFoundError",
    "StoreChange",
    "StreamCancelled",
    "StreamError",
    "StreamReconciler",
]
