"""Gemini model adapter with streaming and grounded search.

Translates the conversation log into google-genai request contents and the
SDK's streamed response chunks into StreamEvents carrying the cumulative text
and the grounding sources seen so far.

The adapter is constructed once at startup and injected into the
ChatOrchestrator; there is no module-level client.
"""

import base64
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from google import genai
from google.genai import types

from groundchat.agent.config import AgentConfig, get_agent_config
from groundchat.models.schemas import (
    ImagePart,
    Message,
    ModelType,
    Part,
    Role,
    Source,
    StreamEvent,
    TextPart,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StreamOptions:
    enable_grounded_search: bool = True
    temperature: float = 0.7


class ModelAdapter(Protocol):
    """Streams a model response for a conversation.

    Implementations yield StreamEvents whose ``cumulative_text`` is the full
    response so far. They may raise at any point before the terminal event.
    """

    def open_stream(
        self,
        model: ModelType,
        history: Sequence[Message],
        new_user_parts: Sequence[Part],
        options: StreamOptions,
    ) -> AsyncIterator[StreamEvent]: ...


def _to_sdk_part(part: Part) -> types.Part | None:
    if isinstance(part, TextPart):
        return types.Part(text=part.text) if part.text else None
    if isinstance(part, ImagePart):
        return types.Part(
            inline_data=types.Blob(
                mime_type=part.inline_image.mime_type,
                data=base64.b64decode(part.inline_image.data),
            )
        )
    return None


def build_contents(
    history: Sequence[Message],
    new_user_parts: Sequence[Part],
) -> list[types.Content]:
    """Build request contents from prior messages plus the new user turn.

    Messages with no usable parts (e.g. a model reply that failed before any
    text arrived) are left out.
    """
    contents: list[types.Content] = []
    for message in history:
        parts = [p for p in (_to_sdk_part(part) for part in message.parts) if p is not None]
        if not parts:
            continue
        role = "user" if message.role == Role.USER else "model"
        contents.append(types.Content(role=role, parts=parts))

    current = [p for p in (_to_sdk_part(part) for part in new_user_parts) if p is not None]
    contents.append(types.Content(role="user", parts=current))
    return contents


def extract_sources(chunk: Any) -> list[Source]:
    """Pull web grounding citations out of a response chunk."""
    candidates = getattr(chunk, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    grounding_chunks = getattr(metadata, "grounding_chunks", None) or []

    sources: list[Source] = []
    for grounding_chunk in grounding_chunks:
        web = getattr(grounding_chunk, "web", None)
        if web is None or not getattr(web, "uri", None):
            continue
        sources.append(Source(title=web.title or web.uri, uri=web.uri))
    return sources


class GeminiAdapter:
    """Model adapter backed by the google-genai SDK.

    Args:
        client: A configured ``genai.Client``.
    """

    def __init__(self, client: genai.Client) -> None:
        self._client = client

    @classmethod
    def from_config(cls, config: AgentConfig | None = None) -> "GeminiAdapter":
        """Create an adapter from configuration.

        Args:
            config: Optional configuration. Loads from environment if not provided.
        """
        config = config or get_agent_config()
        return cls(genai.Client(api_key=config.api_key))

    async def open_stream(
        self,
        model: ModelType,
        history: Sequence[Message],
        new_user_parts: Sequence[Part],
        options: StreamOptions,
    ) -> AsyncIterator[StreamEvent]:
        """Stream the model's answer as cumulative-text events.

        Yields one event per chunk that carries text, then a terminal event
        with the complete text.
        """
        contents = build_contents(history, new_user_parts)
        config = types.GenerateContentConfig(
            tools=[types.Tool(google_search=types.GoogleSearch())]
            if options.enable_grounded_search
            else None,
            temperature=options.temperature,
        )

        logger.info(
            f"Opening Gemini stream: model={model.value} turns={len(contents)} "
            f"grounded={options.enable_grounded_search}"
        )
        response_stream = await self._client.aio.models.generate_content_stream(
            model=model.value,
            contents=contents,
            config=config,
        )

        full_text = ""
        sources: list[Source] = []
        async for chunk in response_stream:
            sources.extend(extract_sources(chunk))
            text_chunk = chunk.text
            if text_chunk:
                full_text += text_chunk
                yield StreamEvent(cumulative_text=full_text, sources=list(sources))

        yield StreamEvent(cumulative_text=full_text, sources=list(sources), terminal=True)
