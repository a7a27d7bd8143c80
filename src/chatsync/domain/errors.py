"""Domain-level exceptions."""


class ChatsyncError(Exception):
    """Base exception for chatsync errors."""


class InvalidMessageError(ChatsyncError, ValueError):
    """Raised when a message is missing its id or violates an invariant."""


class MalformedEventError(ChatsyncError, ValueError):
    """Raised when a broker payload cannot be decoded into a known event."""


class EmbeddingDimensionError(ChatsyncError, ValueError):
    """Raised when an embedding cannot be adapted to the index dimension."""


class PipelineError(ChatsyncError):
    """Raised when a vectorization step fails."""
