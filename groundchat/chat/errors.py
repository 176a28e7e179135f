"""Errors raised by the conversation core."""


class ChatError(Exception):
    """Base class for conversation core errors."""

    pass


class NotFoundError(ChatError, LookupError):
    """Raised when a session or message id is unknown."""

    pass


class BusyError(ChatError):
    """Raised when a session already has an exchange in flight."""

    pass


class MessageFinalizedError(ChatError):
    """Raised when mutating a message whose exchange has terminated."""

    pass


class StreamError(ChatError):
    """Raised when the model stream fails mid-exchange.

    Attributes:
        cause: The underlying exception, if any.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class StreamCancelled(StreamError):
    """Raised when an exchange is abandoned through its generation token."""

    pass
