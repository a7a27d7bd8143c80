"""Message entity and conversation locators."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

import ulid
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from chatsync.domain.errors import InvalidMessageError

PROVISIONAL_ID_PREFIX = "provisional-"


def new_provisional_id() -> str:
    """Return a synthetic id for a locally created, unacknowledged message."""
    return f"{PROVISIONAL_ID_PREFIX}{ulid.new()}"


class MessageKind(str, Enum):
    """Where a message lives."""

    CHANNEL = "channel"
    THREAD_REPLY = "thread_reply"
    DIRECT = "direct"


class ChannelLocator(BaseModel):
    """Locator for a channel conversation."""

    model_config = ConfigDict(frozen=True)

    channel_id: str


class DirectLocator(BaseModel):
    """Locator for a direct conversation between two participants.

    The pair is unordered: it is always stored sorted so that both
    participants build an equal locator.
    """

    model_config = ConfigDict(frozen=True)

    participant_ids: tuple[str, str]

    @field_validator("participant_ids")
    @classmethod
    def _sort_pair(cls, value: tuple[str, str]) -> tuple[str, str]:
        first, second = sorted(value)
        return (first, second)

    @classmethod
    def between(cls, user_a: str, user_b: str) -> "DirectLocator":
        """Build the locator for a conversation between two users."""
        return cls(participant_ids=(user_a, user_b))


ConversationLocator = ChannelLocator | DirectLocator


def direct_topic(user_a: str, user_b: str) -> str:
    """Return the broker topic of a direct conversation.

    Symmetric: ``direct_topic(a, b) == direct_topic(b, a)``.
    """
    low, high = sorted((user_a, user_b))
    return f"dm-{low}-{high}"


def topic_for(locator: ConversationLocator) -> str:
    """Return the broker topic for a conversation locator.

    Threads have no topic of their own; their events travel on the owning
    channel's topic.
    """
    if isinstance(locator, ChannelLocator):
        return locator.channel_id
    return direct_topic(*locator.participant_ids)


class Attachment(BaseModel):
    """Single file attached to a message."""

    url: str
    name: str
    mime_type: str | None = None


class Reaction(BaseModel):
    """Emoji reaction left by a user on a message."""

    id: str = Field(default_factory=lambda: str(ulid.new()))
    emoji: str
    user_id: str
    user_name: str | None = None


def toggle_reaction(
    reactions: list[Reaction],
    user_id: str,
    emoji: str,
    user_name: str | None = None,
) -> list[Reaction]:
    """Toggle a reaction for a (user, emoji) pair.

    An identical reaction from the same user is removed; otherwise a new
    reaction is appended. The input list is not modified.

    Args:
        reactions: Current reactions of the message.
        user_id: The reacting user.
        emoji: The emoji grapheme.
        user_name: Display name stored on a newly created reaction.

    Returns:
        The new list of reactions.
    """
    kept = [r for r in reactions if not (r.user_id == user_id and r.emoji == emoji)]
    if len(kept) != len(reactions):
        return kept
    return [*reactions, Reaction(emoji=emoji, user_id=user_id, user_name=user_name)]


class Message(BaseModel):
    """A chat message snapshot.

    A message belongs to exactly one of: a channel (top level), a thread
    (reply inside a channel) or a direct conversation.

    Attributes:
        id: Opaque unique id. Provisional ids start with ``provisional-``.
        content: Text content.
        author_id: Author's user id.
        author_name: Author display name (may be enriched out of band).
        author_image: Author avatar URL.
        workspace_id: Owning workspace, if any.
        channel_id: Channel locator.
        participant_ids: Direct conversation locator (sorted pair).
        parent_id: Parent message id for thread replies.
        thread_id: Owning thread id for thread replies.
        created_at: Creation time.
        updated_at: Last update time; differs from created_at once edited.
        reactions: Reactions in insertion order.
        attachment: Optional attachment reference.
        is_vectorized: Whether the message has been indexed.
        reply_count: Cached number of thread replies (parent messages).
    """

    id: str
    content: str = ""
    author_id: str
    author_name: str = ""
    author_image: str | None = None
    workspace_id: str | None = None
    channel_id: str | None = None
    participant_ids: tuple[str, str] | None = None
    parent_id: str | None = None
    thread_id: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime | None = None
    reactions: list[Reaction] = Field(default_factory=list)
    attachment: Attachment | None = None
    is_vectorized: bool = False
    reply_count: int = 0

    @model_validator(mode="before")
    @classmethod
    def _reject_missing_id(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("id"):
            raise ValueError("Message id is required")
        return data

    @field_validator("participant_ids")
    @classmethod
    def _sort_participants(
        cls, value: tuple[str, str] | None
    ) -> tuple[str, str] | None:
        if value is None:
            return None
        first, second = sorted(value)
        return (first, second)

    @model_validator(mode="after")
    def _check_placement(self) -> "Message":
        if (self.channel_id is None) == (self.participant_ids is None):
            raise ValueError(
                "Message must belong to exactly one channel or direct conversation"
            )
        if (self.parent_id is None) != (self.thread_id is None):
            raise ValueError("Thread replies require both parent_id and thread_id")
        if self.parent_id is not None and self.channel_id is None:
            raise ValueError("Threads are not supported for direct messages")
        if self.updated_at is None:
            self.updated_at = self.created_at
            # derived, not carried by the snapshot
            self.__pydantic_fields_set__.discard("updated_at")
        return self

    @property
    def edited(self) -> bool:
        """Return True if the message was edited after creation."""
        return self.updated_at != self.created_at

    @property
    def is_thread_reply(self) -> bool:
        return self.parent_id is not None

    @property
    def is_direct(self) -> bool:
        return self.participant_ids is not None

    @property
    def is_provisional(self) -> bool:
        return self.id.startswith(PROVISIONAL_ID_PREFIX)

    @property
    def kind(self) -> MessageKind:
        if self.is_direct:
            return MessageKind.DIRECT
        if self.is_thread_reply:
            return MessageKind.THREAD_REPLY
        return MessageKind.CHANNEL

    @property
    def locator(self) -> ConversationLocator:
        """Return the conversation this message belongs to."""
        if self.participant_ids is not None:
            return DirectLocator(participant_ids=self.participant_ids)
        if self.channel_id is not None:
            return ChannelLocator(channel_id=self.channel_id)
        raise InvalidMessageError(f"Message {self.id!r} has no conversation")

    def sort_key(self) -> tuple[datetime, str]:
        """Return the display ordering key: creation time, then id."""
        return (self.created_at, self.id)


class AuthorProfile(BaseModel):
    """Author display data delivered out of band from the message stream."""

    display_name: str = ""
    avatar_url: str | None = None


class MessageDraft(BaseModel):
    """Content submitted by the local user before the server assigns an id."""

    content: str
    author_id: str
    author_name: str = ""
    author_image: str | None = None
    workspace_id: str | None = None
    locator: ConversationLocator
    parent_id: str | None = None
    thread_id: str | None = None
    attachment: Attachment | None = None

    def to_provisional(self) -> Message:
        """Build the provisional message shown until the write is acknowledged."""
        channel_id = None
        participant_ids = None
        if isinstance(self.locator, ChannelLocator):
            channel_id = self.locator.channel_id
        else:
            participant_ids = self.locator.participant_ids
        return Message(
            id=new_provisional_id(),
            content=self.content,
            author_id=self.author_id,
            author_name=self.author_name,
            author_image=self.author_image,
            workspace_id=self.workspace_id,
            channel_id=channel_id,
            participant_ids=participant_ids,
            parent_id=self.parent_id,
            thread_id=self.thread_id,
            attachment=self.attachment,
        )
