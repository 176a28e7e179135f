"""Pydantic models for the conversation log and the API.

Provides type safety, validation, and automatic OpenAPI documentation.

Models:
    - Session / Message / Part / Source: the conversation log
    - StreamEvent: one cumulative-text event from a model adapter
    - ChatRequest / StreamChunk: streaming endpoint payloads
    - SessionSummary: sidebar listing entry
"""

from groundchat.models.schemas import (
    IN_FLIGHT_STATES,
    NEW_CHAT_TITLE,
    ChatRequest,
    ExchangeState,
    ImagePart,
    InlineImage,
    Message,
    ModelType,
    Part,
    Role,
    Session,
    SessionSummary,
    Source,
    StreamChunk,
    StreamEvent,
    StreamStatus,
    TextPart,
    dedupe_sources,
)

__all__ = [
    "IN_FLIGHT_STATES",
    "NEW_CHAT_TITLE",
    "ChatRequest",
    "ExchangeState",
    "ImagePart",
    "InlineImage",
    "Message",
    "ModelType",
    "Part",
    "Role",
    "Session",
    "SessionSummary",
    "Source",
    "StreamChunk",
    "StreamEvent",
    "StreamStatus",
    "TextPart",
    "dedupe_sources",
]
