"""SQLite implementation of MessageRepository."""

from collections.abc import Sequence

from sqlalchemy import delete, func, or_, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import col, select

from chatsync.domain.entities.message import (
    ChannelLocator,
    ConversationLocator,
    Message,
    toggle_reaction,
)
from chatsync.domain.entities.message_record import MessageRecord, direct_key
from chatsync.infrastructure.persistence.database import Database


class SqliteMessageRepository:
    """SQLite implementation of MessageRepository.

    Uses SQLModel with async SQLite for message persistence. Reply counts are
    not stored; they are counted from the replies whenever messages are read.
    """

    def __init__(self, database: Database) -> None:
        """Initialize the repository.

        Args:
            database: Database instance for session management.
        """
        self._database = database

    async def save(self, message: Message) -> None:
        """Save a message (upsert).

        If a message with the same ID exists, it is updated while preserving
        its original created_at and a set is_vectorized flag.

        Args:
            message: The message to save.
        """
        record = MessageRecord.from_message(message)
        async with self._database.get_session() as session:
            existing = await session.get(MessageRecord, message.id)

            if existing:
                existing.content = record.content
                existing.author_name = record.author_name or existing.author_name
                existing.author_image = record.author_image or existing.author_image
                existing.workspace_id = record.workspace_id
                existing.channel_id = record.channel_id
                existing.direct_key = record.direct_key
                existing.parent_id = record.parent_id
                existing.thread_id = record.thread_id
                existing.updated_at = record.updated_at
                existing.reactions = record.reactions
                existing.attachment = record.attachment
                existing.is_vectorized = existing.is_vectorized or record.is_vectorized
                session.add(existing)
            else:
                session.add(record)

    async def get_by_id(self, message_id: str) -> Message | None:
        """Get a message by ID.

        Returns:
            The message if found, None otherwise.
        """
        async with self._database.get_session() as session:
            record = await session.get(MessageRecord, message_id)
            if record is None:
                return None
            counts = await self._reply_counts(session, [record.id])
            return record.to_message(reply_count=counts.get(record.id, 0))

    async def delete(self, message_id: str) -> bool:
        """Delete a message and its thread replies.

        Returns:
            True if the message existed.
        """
        async with self._database.get_session() as session:
            record = await session.get(MessageRecord, message_id)
            if record is None:
                return False
            await session.execute(
                delete(MessageRecord).where(
                    or_(
                        col(MessageRecord.id) == message_id,
                        col(MessageRecord.parent_id) == message_id,
                    )
                )
            )
            return True

    async def toggle_reaction(
        self, message_id: str, user_id: str, emoji: str, user_name: str | None = None
    ) -> Message | None:
        """Add or remove a (user, emoji) reaction on a message.

        Returns:
            The updated message, or None if it does not exist.
        """
        async with self._database.get_session() as session:
            record = await session.get(MessageRecord, message_id)
            if record is None:
                return None
            message = record.to_message()
            reactions = toggle_reaction(
                message.reactions, user_id, emoji, user_name=user_name
            )
            record.reactions = [r.model_dump(mode="json") for r in reactions]
            session.add(record)
            await session.flush()
            counts = await self._reply_counts(session, [record.id])
            return record.to_message(reply_count=counts.get(record.id, 0))

    async def fetch_conversation_messages(
        self, locator: ConversationLocator
    ) -> list[Message]:
        """Get the top-level messages of a conversation.

        Returns messages sorted by (created_at, id) ascending. Thread replies
        are excluded.
        """
        statement = select(MessageRecord).where(
            col(MessageRecord.parent_id).is_(None)
        )
        if isinstance(locator, ChannelLocator):
            statement = statement.where(MessageRecord.channel_id == locator.channel_id)
        else:
            statement = statement.where(
                MessageRecord.direct_key == direct_key(locator.participant_ids)
            )
        statement = statement.order_by(
            col(MessageRecord.created_at).asc(), col(MessageRecord.id).asc()
        )

        async with self._database.get_session() as session:
            result = await session.execute(statement)
            records = list(result.scalars().all())
            counts = await self._reply_counts(session, [r.id for r in records])
            return [r.to_message(reply_count=counts.get(r.id, 0)) for r in records]

    async def fetch_thread_replies(self, parent_id: str) -> list[Message]:
        """Get the replies of a thread sorted by (created_at, id) ascending."""
        statement = (
            select(MessageRecord)
            .where(MessageRecord.parent_id == parent_id)
            .order_by(col(MessageRecord.created_at).asc(), col(MessageRecord.id).asc())
        )
        async with self._database.get_session() as session:
            result = await session.execute(statement)
            return [r.to_message() for r in result.scalars().all()]

    async def count_unvectorized(self) -> int:
        """Get the count of messages not yet vectorized."""
        async with self._database.get_session() as session:
            result = await session.execute(
                select(func.count())
                .select_from(MessageRecord)
                .where(col(MessageRecord.is_vectorized).is_(False))
            )
            count = result.scalar()
            return count if count else 0

    async def fetch_unvectorized(self, author_id: str | None = None) -> list[Message]:
        """Get messages not yet vectorized, oldest first.

        Args:
            author_id: Restrict to one author when given.
        """
        statement = select(MessageRecord).where(
            col(MessageRecord.is_vectorized).is_(False)
        )
        if author_id is not None:
            statement = statement.where(MessageRecord.author_id == author_id)
        statement = statement.order_by(
            col(MessageRecord.created_at).asc(), col(MessageRecord.id).asc()
        )
        async with self._database.get_session() as session:
            result = await session.execute(statement)
            return [r.to_message() for r in result.scalars().all()]

    async def mark_vectorized(self, message_ids: list[str]) -> None:
        """Mark messages as vectorized in one batched update.

        Args:
            message_ids: List of message IDs to mark.
        """
        if not message_ids:
            return

        async with self._database.get_session() as session:
            stmt = (
                update(MessageRecord)
                .where(col(MessageRecord.id).in_(message_ids))
                .values(is_vectorized=True)
            )
            await session.execute(stmt)

    @staticmethod
    async def _reply_counts(
        session: AsyncSession, parent_ids: Sequence[str]
    ) -> dict[str, int]:
        if not parent_ids:
            return {}
        result = await session.execute(
            select(MessageRecord.parent_id, func.count())
            .where(col(MessageRecord.parent_id).in_(parent_ids))
            .group_by(col(MessageRecord.parent_id))
        )
        return {parent_id: count for parent_id, count in result.all()}
