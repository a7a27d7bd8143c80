"""MessageRepository protocols."""

from typing import Protocol

from chatsync.domain.entities.message import ConversationLocator, Message


class ConversationFetcher(Protocol):
    """Backfill reads used by the realtime sync controller."""

    async def fetch_conversation_messages(
        self, locator: ConversationLocator
    ) -> list[Message]:
        """Fetch the messages of a conversation, thread replies excluded.

        Args:
            locator: Channel or direct conversation locator.

        Returns:
            Messages sorted by creation time ascending.
        """
        ...

    async def fetch_thread_replies(self, parent_id: str) -> list[Message]:
        """Fetch the replies of a thread.

        Args:
            parent_id: The thread's parent message id.

        Returns:
            Replies sorted by creation time ascending.
        """
        ...


class MessageRepository(ConversationFetcher, Protocol):
    """Repository protocol for messages.

    Defines the reads and writes the core relies on. Schema and migrations
    belong to the persistence layer.
    """

    async def save(self, message: Message) -> None:
        """Save a message (upsert).

        The created_at and is_vectorized fields of an existing row are
        preserved.

        Args:
            message: The message to save.
        """
        ...

    async def get_by_id(self, message_id: str) -> Message | None:
        """Get a message by ID.

        Returns:
            The message if found, None otherwise.
        """
        ...

    async def delete(self, message_id: str) -> bool:
        """Delete a message and its thread replies.

        Returns:
            True if the message existed.
        """
        ...

    async def toggle_reaction(
        self, message_id: str, user_id: str, emoji: str, user_name: str | None = None
    ) -> Message | None:
        """Add or remove a (user, emoji) reaction.

        Returns:
            The updated message, or None if it does not exist.
        """
        ...

    async def count_unvectorized(self) -> int:
        """Get the count of messages not yet vectorized."""
        ...

    async def fetch_unvectorized(self, author_id: str | None = None) -> list[Message]:
        """Get messages not yet vectorized, oldest first.

        Args:
            author_id: Restrict to one author when given.
        """
        ...

    async def mark_vectorized(self, message_ids: list[str]) -> None:
        """Mark messages as vectorized in one batched update.

        Args:
            message_ids: List of message IDs to mark.
        """
        ...
