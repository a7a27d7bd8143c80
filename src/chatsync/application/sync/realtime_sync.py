"""Realtime synchronization between broker topics and the MessageStore."""

from enum import Enum
from types import TracebackType
from typing import Any

from structlog.stdlib import BoundLogger

from chatsync.application.sync.message_store import MessageStore, UpsertOutcome
from chatsync.domain.entities.broker_event import (
    MemberProfileChanged,
    MessageCreated,
    MessageDeleted,
    MessageUpdated,
    parse_broker_event,
)
from chatsync.domain.entities.message import (
    ConversationLocator,
    Message,
    MessageDraft,
    topic_for,
)
from chatsync.domain.errors import InvalidMessageError, MalformedEventError
from chatsync.domain.repositories.message_repository import ConversationFetcher
from chatsync.domain.services.event_broker import EventBroker
from chatsync.domain.services.message_writer import MessageWriter


class SubscriptionState(str, Enum):
    """Lifecycle of a topic subscription."""

    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    SUBSCRIBED = "subscribed"


class RealtimeSyncController:
    """Binds a MessageStore to broker topics.

    Subscribing a topic binds the broker and backfills the conversation;
    inbound events are decoded and applied to the store through its merge
    operations. The subscription registry belongs to the instance and is
    released when the controller is closed, typically through
    ``async with``.

    Args:
        store: Store receiving the reconciled messages.
        broker: Publish/subscribe transport.
        fetcher: Backfill reads.
        logger: Structured logger.
        writer: Outbound write path used by send_message.
    """

    def __init__(
        self,
        store: MessageStore,
        broker: EventBroker,
        fetcher: ConversationFetcher,
        logger: BoundLogger,
        writer: MessageWriter | None = None,
    ) -> None:
        self._store = store
        self._broker = broker
        self._fetcher = fetcher
        self._writer = writer
        self._logger = logger
        self._topics: dict[str, SubscriptionState] = {}
        self._locators: dict[str, ConversationLocator] = {}

    async def __aenter__(self) -> "RealtimeSyncController":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def store(self) -> MessageStore:
        return self._store

    @property
    def active_topics(self) -> set[str]:
        """Return topics currently subscribing or subscribed."""
        return set(self._topics)

    def state_of(self, topic: str) -> SubscriptionState:
        """Return the subscription state of a topic."""
        return self._topics.get(topic, SubscriptionState.UNSUBSCRIBED)

    async def subscribe(self, locator: ConversationLocator) -> bool:
        """Subscribe to a conversation topic and backfill it.

        A second subscribe to a subscribing or subscribed topic is a no-op.
        Transport failures are logged and leave the topic unsubscribed so
        the caller can retry.

        Args:
            locator: Conversation to follow.

        Returns:
            True if the topic is subscribed when the call returns.
        """
        topic = topic_for(locator)
        if topic in self._topics:
            return self._topics[topic] is SubscriptionState.SUBSCRIBED

        self._topics[topic] = SubscriptionState.SUBSCRIBING
        self._locators[topic] = locator
        self._logger.info("Subscribing to topic", topic=topic)

        try:
            await self._broker.subscribe(topic, self.handle_event)
        except (ConnectionError, TimeoutError, OSError) as e:
            self._logger.warning(
                "Failed to bind broker topic", topic=topic, error=str(e)
            )
            self._forget(topic)
            return False

        try:
            backfilled = await self._backfill(topic, locator)
        except BaseException:
            await self._release(topic)
            raise
        if not backfilled:
            await self._release(topic)
            return False

        # unsubscribe may have run while the backfill was in flight
        if topic not in self._topics:
            return False
        self._topics[topic] = SubscriptionState.SUBSCRIBED
        self._logger.info("Subscribed to topic", topic=topic)
        return True

    async def _backfill(self, topic: str, locator: ConversationLocator) -> bool:
        try:
            messages = await self._fetcher.fetch_conversation_messages(locator)
        except (ConnectionError, TimeoutError, OSError) as e:
            self._logger.warning("Backfill failed", topic=topic, error=str(e))
            return False

        for message in messages:
            self._store.upsert(message)
        self._logger.debug("Backfill applied", topic=topic, count=len(messages))
        return True

    async def unsubscribe(self, target: ConversationLocator | str) -> None:
        """Tear down the broker binding of a topic. Safe in any state.

        Args:
            target: Conversation locator or topic name.
        """
        topic = target if isinstance(target, str) else topic_for(target)
        if topic not in self._topics:
            return
        await self._release(topic)
        self._logger.info("Unsubscribed from topic", topic=topic)

    async def _release(self, topic: str) -> None:
        self._forget(topic)
        try:
            await self._broker.unsubscribe(topic)
        except (ConnectionError, TimeoutError, OSError) as e:
            self._logger.warning(
                "Failed to release broker topic", topic=topic, error=str(e)
            )

    def _forget(self, topic: str) -> None:
        self._topics.pop(topic, None)
        self._locators.pop(topic, None)

    async def open_conversation(self, locator: ConversationLocator) -> bool:
        """Switch to a conversation.

        Subscribes the new topic, then releases every other topic. Stray
        events from a released topic are dropped by handle_event.

        Returns:
            True if the new topic is subscribed.
        """
        subscribed = await self.subscribe(locator)
        current = topic_for(locator)
        for topic in [t for t in self._topics if t != current]:
            await self.unsubscribe(topic)
        return subscribed

    async def open_thread(self, parent_id: str) -> bool:
        """Load the replies of a thread into the store.

        Threads have no broker topic of their own: replies arrive on the
        owning channel's topic, which must be subscribed separately.

        Returns:
            True if the replies were loaded.
        """
        try:
            replies = await self._fetcher.fetch_thread_replies(parent_id)
        except (ConnectionError, TimeoutError, OSError) as e:
            self._logger.warning(
                "Thread backfill failed", parent_id=parent_id, error=str(e)
            )
            return False
        self._store.load_thread(parent_id, replies)
        return True

    async def resync(self) -> None:
        """Backfill every subscribed topic again.

        Used after the broker reconnects, since events published while the
        connection was down are lost.
        """
        for topic, locator in list(self._locators.items()):
            await self._backfill(topic, locator)

    def handle_event(self, topic: str, payload: dict[str, Any]) -> None:
        """Apply one inbound broker event.

        Events for topics that are not active are dropped, as are malformed
        payloads.

        Args:
            topic: Topic the event was delivered on.
            payload: Raw event payload.
        """
        if topic not in self._topics:
            self._logger.debug("Dropping event for inactive topic", topic=topic)
            return

        try:
            event = parse_broker_event(payload)
        except MalformedEventError as e:
            self._logger.warning("Dropping malformed event", topic=topic, error=str(e))
            return

        try:
            match event:
                case MessageCreated(message=message):
                    self._apply_created(message)
                case MessageUpdated(message=message):
                    self._store.upsert(message)
                case MessageDeleted(message_id=message_id):
                    self._store.remove(message_id)
                case MemberProfileChanged():
                    self._store.enrich_by_author(event.author_id, event.to_profile())
        except InvalidMessageError as e:
            self._logger.warning("Dropping invalid event", topic=topic, error=str(e))

    def _apply_created(self, message: Message) -> None:
        outcome = self._store.upsert(message)
        if message.parent_id is not None:
            delta = 1 if outcome is UpsertOutcome.INSERTED else 0
            self._store.recompute_reply_count(message.parent_id, delta=delta)

    async def send_message(self, draft: MessageDraft) -> Message:
        """Send a message with an optimistic provisional entry.

        The provisional entry is shown at once and replaced by the
        authoritative message when the write returns. On failure it is
        discarded and the error propagates to the caller.

        Raises:
            RuntimeError: If no writer was configured.
        """
        if self._writer is None:
            raise RuntimeError("No message writer configured")

        provisional = draft.to_provisional()
        self._store.add_provisional(provisional)
        try:
            message = await self._writer.post_message(draft)
        except Exception:
            self._store.discard_provisional(provisional.id)
            raise
        self._store.confirm(provisional.id, message)
        return message

    async def close(self) -> None:
        """Unsubscribe every topic held by this controller."""
        for topic in list(self._topics):
            await self.unsubscribe(topic)
