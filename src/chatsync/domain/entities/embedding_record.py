"""Embedding records stored in the similarity index."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from chatsync.domain.entities.message import Message


class EmbeddingMetadata(BaseModel):
    """Mirror of the message fields needed to display a match.

    Lets retrieval render context without reading the primary store.
    """

    content: str
    author_id: str
    author_name: str = ""
    channel_id: str | None = None
    workspace_id: str | None = None
    participant_ids: tuple[str, str] | None = None
    created_at: datetime
    updated_at: datetime
    in_thread: bool = False


class EmbeddingRecord(BaseModel):
    """Vector plus metadata for one message. The id is the message id."""

    id: str
    vector: list[float]
    metadata: EmbeddingMetadata

    @classmethod
    def from_message(cls, message: Message, vector: list[float]) -> "EmbeddingRecord":
        """Build the record for a message.

        Args:
            message: Source message.
            vector: Embedding of the message content, already adapted to the
                index dimension.

        Returns:
            The embedding record.
        """
        return cls(
            id=message.id,
            vector=vector,
            metadata=EmbeddingMetadata(
                content=message.content,
                author_id=message.author_id,
                author_name=message.author_name,
                channel_id=message.channel_id,
                workspace_id=message.workspace_id,
                participant_ids=message.participant_ids,
                created_at=message.created_at,
                updated_at=message.updated_at or message.created_at,
                in_thread=message.thread_id is not None,
            ),
        )


class QueryMatch(BaseModel):
    """One similarity search hit."""

    id: str
    score: float
    metadata: EmbeddingMetadata


class RetrievalFilters(BaseModel):
    """Exact-match metadata filters for retrieval.

    The author is always required so that retrieved context reflects a single
    user's writing style.
    """

    author_id: str = Field(min_length=1)
    channel_id: str | None = None
    workspace_id: str | None = None

    def to_index_filter(self) -> dict[str, Any]:
        """Return the conjunction of populated filters."""
        return self.model_dump(exclude_none=True)
