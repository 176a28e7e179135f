from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator

NEW_CHAT_TITLE = "New chat"


def _new_id() -> str:
    return str(uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    """Author of a message."""

    USER = "user"
    MODEL = "model"


class ModelType(str, Enum):
    """Gemini models selectable from the UI."""

    FLASH = "gemini-3-flash-preview"
    PRO = "gemini-3-pro-preview"


class InlineImage(BaseModel):
    """Image attached to a message.

    Attributes:
        mime_type: Image MIME type (e.g. image/png).
        data: Base64-encoded image bytes.
    """

    mime_type: str = Field(..., min_length=1)
    data: str = Field(..., min_length=1)


class TextPart(BaseModel):
    type: Literal["text"] = "text"
    text: str = ""


class ImagePart(BaseModel):
    type: Literal["inline_image"] = "inline_image"
    inline_image: InlineImage


Part = Annotated[TextPart | ImagePart, Field(discriminator="type")]


class Source(BaseModel):
    """A grounding citation supplied alongside model text."""

    title: str = ""
    uri: str


def dedupe_sources(sources: list[Source]) -> list[Source]:
    """Drop sources whose uri was already seen, keeping first-seen order."""
    seen: set[str] = set()
    unique: list[Source] = []
    for source in sources:
        if source.uri in seen:
            continue
        seen.add(source.uri)
        unique.append(source)
    return unique


class Message(BaseModel):
    """A single turn in a session.

    Attributes:
        id: Unique identifier within the session.
        role: Who wrote the message. Never changes after creation.
        parts: Ordered text and image parts.
        grounding_sources: Citations, unique by uri.
        timestamp: Creation time (UTC).
        final: True once the message can no longer be mutated.
    """

    id: str = Field(default_factory=_new_id)
    role: Role
    parts: list[Part] = Field(default_factory=list)
    grounding_sources: list[Source] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_now)
    final: bool = False

    @property
    def text(self) -> str:
        """Concatenated text content of all text parts."""
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    @property
    def images(self) -> list[InlineImage]:
        return [part.inline_image for part in self.parts if isinstance(part, ImagePart)]


class Session(BaseModel):
    """A chat session and its message log."""

    id: str = Field(default_factory=_new_id)
    title: str = NEW_CHAT_TITLE
    messages: list[Message] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)


class StreamEvent(BaseModel):
    """One partial-response event from a model adapter.

    Attributes:
        cumulative_text: Full response text so far, not a delta.
        sources: Grounding sources reported so far.
        terminal: Whether this is the last event of the exchange.
    """

    cumulative_text: str = ""
    sources: list[Source] = Field(default_factory=list)
    terminal: bool = False


class ExchangeState(str, Enum):
    """Lifecycle of one user-message to model-response cycle."""

    IDLE = "idle"
    USER_TURN_COMMITTED = "user_turn_committed"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


IN_FLIGHT_STATES = frozenset({ExchangeState.USER_TURN_COMMITTED, ExchangeState.STREAMING})


class SessionSummary(BaseModel):
    """Sidebar entry for a session."""

    id: str
    title: str
    created_at: datetime
    message_count: int = Field(ge=0)
    current: bool = False

    @classmethod
    def from_session(cls, session: Session, current: bool = False) -> "SessionSummary":
        return cls(
            id=session.id,
            title=session.title,
            created_at=session.created_at,
            message_count=len(session.messages),
            current=current,
        )


class ChatRequest(BaseModel):
    """Request payload for the message streaming endpoint.

    Attributes:
        message: User's text. May be empty when an image is attached.
        image: Optional attached image.
        model: Model to answer with (configured default when omitted).
    """

    message: str = ""
    image: InlineImage | None = None
    model: ModelType | None = None

    @field_validator("message", mode="before")
    @classmethod
    def strip_message(cls, v: str) -> str:
        """Strip whitespace from message before validation."""
        if isinstance(v, str):
            return v.strip()
        return v

    @model_validator(mode="after")
    def require_text_or_image(self) -> "ChatRequest":
        if not self.message and self.image is None:
            raise ValueError("A message or an image is required")
        return self


class StreamStatus(str, Enum):
    """Status values for streaming updates."""

    STREAMING = "streaming"
    COMPLETE = "complete"
    ERROR = "error"
    CANCELLED = "cancelled"


class StreamChunk(BaseModel):
    """A snapshot of the in-progress model message sent over SSE.

    Attributes:
        message: Current content of the model message.
        done: Whether this is the final chunk.
        status: Current processing status.
        error: Error message if the exchange failed.
    """

    message: Message | None = None
    done: bool
    status: StreamStatus
    error: str | None = None
