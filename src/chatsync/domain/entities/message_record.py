"""MessageRecord entity for message persistence."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Column, Index
from sqlalchemy.types import JSON
from sqlmodel import Field, SQLModel

from chatsync.domain.entities.message import Attachment, Message, Reaction


def _as_utc(value: datetime) -> datetime:
    # SQLite hands datetimes back offset-naive
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def direct_key(participant_ids: tuple[str, str]) -> str:
    """Return the storage key of a direct conversation (sorted pair)."""
    low, high = sorted(participant_ids)
    return f"{low}:{high}"


class MessageRecord(SQLModel, table=True):
    """Persisted message row.

    Attributes:
        id: Message id.
        content: Message content.
        author_id: Author's user id.
        author_name: Author display name at write time.
        author_image: Author avatar URL at write time.
        workspace_id: Owning workspace.
        channel_id: Channel id for channel messages and thread replies.
        direct_key: Sorted `{user_a}:{user_b}` key for direct messages.
        parent_id: Parent message id for thread replies.
        thread_id: Thread id for thread replies.
        created_at: Creation time.
        updated_at: Last update time.
        reactions: Reactions as JSON.
        attachment: Attachment reference as JSON.
        is_vectorized: Whether the message has been indexed.
    """

    __tablename__ = "messages"
    __table_args__ = (
        Index("idx_channel_created", "channel_id", "created_at"),
        Index("idx_direct_created", "direct_key", "created_at"),
        Index("idx_parent_created", "parent_id", "created_at"),
        Index("idx_unvectorized", "is_vectorized", "author_id"),
    )

    id: str = Field(primary_key=True)
    content: str
    author_id: str = Field(index=True)
    author_name: str = Field(default="")
    author_image: str | None = None
    workspace_id: str | None = Field(default=None, index=True)
    channel_id: str | None = None
    direct_key: str | None = None
    parent_id: str | None = None
    thread_id: str | None = None
    created_at: datetime
    updated_at: datetime
    reactions: list[dict[str, Any]] = Field(
        default_factory=list, sa_column=Column(JSON)
    )
    attachment: dict[str, Any] | None = Field(default=None, sa_column=Column(JSON))
    is_vectorized: bool = Field(default=False)

    @classmethod
    def from_message(cls, message: Message) -> "MessageRecord":
        """Build a row from a message snapshot."""
        return cls(
            id=message.id,
            content=message.content,
            author_id=message.author_id,
            author_name=message.author_name,
            author_image=message.author_image,
            workspace_id=message.workspace_id,
            channel_id=message.channel_id,
            direct_key=(
                direct_key(message.participant_ids)
                if message.participant_ids
                else None
            ),
            parent_id=message.parent_id,
            thread_id=message.thread_id,
            created_at=_as_utc(message.created_at),
            updated_at=_as_utc(message.updated_at or message.created_at),
            reactions=[r.model_dump(mode="json") for r in message.reactions],
            attachment=(
                message.attachment.model_dump(mode="json")
                if message.attachment
                else None
            ),
            is_vectorized=message.is_vectorized,
        )

    def to_message(self, reply_count: int = 0) -> Message:
        """Convert the row back into a message snapshot.

        Args:
            reply_count: Number of thread replies, computed by the caller.
        """
        participant_ids = None
        if self.direct_key:
            low, high = self.direct_key.split(":", 1)
            participant_ids = (low, high)
        return Message(
            id=self.id,
            content=self.content,
            author_id=self.author_id,
            author_name=self.author_name,
            author_image=self.author_image,
            workspace_id=self.workspace_id,
            channel_id=self.channel_id,
            participant_ids=participant_ids,
            parent_id=self.parent_id,
            thread_id=self.thread_id,
            created_at=_as_utc(self.created_at),
            updated_at=_as_utc(self.updated_at),
            reactions=[Reaction(**r) for r in self.reactions or []],
            attachment=Attachment(**self.attachment) if self.attachment else None,
            is_vectorized=self.is_vectorized,
            reply_count=reply_count,
        )
