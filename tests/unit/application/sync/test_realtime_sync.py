"""Tests for RealtimeSyncController."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
import structlog
from aiohttp import web

from chatsync.application.sync.message_store import MessageStore
from chatsync.application.sync.realtime_sync import (
    RealtimeSyncController,
    SubscriptionState,
)
from chatsync.domain.entities.message import (
    ChannelLocator,
    DirectLocator,
    Message,
    MessageDraft,
)
from chatsync.infrastructure.broker.in_memory import InMemoryBroker
from chatsync.infrastructure.http.backfill_client import HttpBackfillClient

BASE_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
CHANNEL = ChannelLocator(channel_id="c1")


def create_message(
    id: str = "m1",
    content: str = "hello",
    channel_id: str = "c1",
    parent_id: str | None = None,
    minutes: int = 0,
    **extra: Any,
) -> Message:
    """Helper to create a channel Message."""
    return Message(
        id=id,
        content=content,
        author_id=extra.pop("author_id", "u1"),
        channel_id=channel_id,
        parent_id=parent_id,
        thread_id=parent_id,
        created_at=BASE_TIME + timedelta(minutes=minutes),
        **extra,
    )


def wire(message: Message) -> dict[str, Any]:
    return message.model_dump(mode="json", exclude_unset=True)


@pytest.fixture
def logger() -> structlog.stdlib.BoundLogger:
    return structlog.stdlib.get_logger("test")


@pytest.fixture
def broker(logger: structlog.stdlib.BoundLogger) -> InMemoryBroker:
    return InMemoryBroker(logger=logger)


@pytest.fixture
def fetcher() -> MagicMock:
    fetcher = MagicMock()
    fetcher.fetch_conversation_messages = AsyncMock(return_value=[])
    fetcher.fetch_thread_replies = AsyncMock(return_value=[])
    return fetcher


@pytest.fixture
def store() -> MessageStore:
    return MessageStore()


@pytest.fixture
def controller(
    store: MessageStore,
    broker: InMemoryBroker,
    fetcher: MagicMock,
    logger: structlog.stdlib.BoundLogger,
) -> RealtimeSyncController:
    return RealtimeSyncController(
        store=store, broker=broker, fetcher=fetcher, logger=logger
    )


class TestSubscribe:
    """Tests for subscribe and unsubscribe."""

    async def test_subscribe_backfills(
        self,
        controller: RealtimeSyncController,
        broker: InMemoryBroker,
        fetcher: MagicMock,
        store: MessageStore,
    ) -> None:
        fetcher.fetch_conversation_messages.return_value = [
            create_message(id="m1"),
            create_message(id="m2", minutes=1),
        ]

        assert await controller.subscribe(CHANNEL) is True

        assert controller.state_of("c1") is SubscriptionState.SUBSCRIBED
        assert "c1" in broker.topics
        assert store.view_conversation(CHANNEL).ids() == ["m1", "m2"]
        fetcher.fetch_conversation_messages.assert_awaited_once_with(CHANNEL)

    async def test_subscribe_is_idempotent(
        self, controller: RealtimeSyncController, fetcher: MagicMock
    ) -> None:
        await controller.subscribe(CHANNEL)
        await controller.subscribe(CHANNEL)

        fetcher.fetch_conversation_messages.assert_awaited_once()

    async def test_direct_topic(
        self, controller: RealtimeSyncController, broker: InMemoryBroker
    ) -> None:
        await controller.subscribe(DirectLocator.between("u2", "u1"))

        assert broker.topics == {"dm-u1-u2"}

    async def test_bind_failure_leaves_unsubscribed(
        self,
        store: MessageStore,
        fetcher: MagicMock,
        logger: structlog.stdlib.BoundLogger,
    ) -> None:
        broker = MagicMock()
        broker.subscribe = AsyncMock(side_effect=ConnectionError("down"))
        controller = RealtimeSyncController(store, broker, fetcher, logger)

        assert await controller.subscribe(CHANNEL) is False

        assert controller.state_of("c1") is SubscriptionState.UNSUBSCRIBED
        fetcher.fetch_conversation_messages.assert_not_awaited()

    async def test_backfill_failure_releases_binding(
        self,
        controller: RealtimeSyncController,
        broker: InMemoryBroker,
        fetcher: MagicMock,
    ) -> None:
        fetcher.fetch_conversation_messages.side_effect = ConnectionError("down")

        assert await controller.subscribe(CHANNEL) is False

        assert controller.state_of("c1") is SubscriptionState.UNSUBSCRIBED
        assert broker.topics == set()

    async def test_unexpected_backfill_error_releases_binding(
        self,
        controller: RealtimeSyncController,
        broker: InMemoryBroker,
        fetcher: MagicMock,
    ) -> None:
        fetcher.fetch_conversation_messages.side_effect = [ValueError("bad"), []]

        with pytest.raises(ValueError):
            await controller.subscribe(CHANNEL)

        assert controller.state_of("c1") is SubscriptionState.UNSUBSCRIBED
        assert broker.topics == set()
        assert await controller.subscribe(CHANNEL) is True

    async def test_invalid_backfill_item_dropped(
        self,
        store: MessageStore,
        broker: InMemoryBroker,
        logger: structlog.stdlib.BoundLogger,
        aiohttp_server: Any,
    ) -> None:
        async def handle(request: web.Request) -> web.Response:
            return web.json_response(
                {
                    "messages": [
                        wire(create_message(id="m1")),
                        {"author_id": "u2", "channel_id": "c1"},
                    ]
                }
            )

        app = web.Application()
        app.router.add_get("/api/v1/channels/{channel_id}/messages", handle)
        server = await aiohttp_server(app)

        async with aiohttp.ClientSession() as session:
            fetcher = HttpBackfillClient(str(server.make_url("/")), session)
            controller = RealtimeSyncController(store, broker, fetcher, logger)

            assert await controller.subscribe(CHANNEL) is True

        assert controller.state_of("c1") is SubscriptionState.SUBSCRIBED
        assert store.view_conversation(CHANNEL).ids() == ["m1"]

    async def test_retry_after_failure(
        self, controller: RealtimeSyncController, fetcher: MagicMock
    ) -> None:
        fetcher.fetch_conversation_messages.side_effect = [TimeoutError(), []]

        assert await controller.subscribe(CHANNEL) is False
        assert await controller.subscribe(CHANNEL) is True

    async def test_unsubscribe_during_backfill(
        self,
        controller: RealtimeSyncController,
        broker: InMemoryBroker,
        fetcher: MagicMock,
    ) -> None:
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow_fetch(locator: ChannelLocator) -> list[Message]:
            started.set()
            await release.wait()
            return [create_message()]

        fetcher.fetch_conversation_messages.side_effect = slow_fetch
        task = asyncio.create_task(controller.subscribe(CHANNEL))
        await started.wait()
        assert controller.state_of("c1") is SubscriptionState.SUBSCRIBING

        await controller.unsubscribe(CHANNEL)
        release.set()

        assert await task is False
        assert controller.state_of("c1") is SubscriptionState.UNSUBSCRIBED
        assert broker.topics == set()

    async def test_unsubscribe_unknown_topic(
        self, controller: RealtimeSyncController
    ) -> None:
        await controller.unsubscribe("never-subscribed")

    async def test_context_manager_releases_topics(
        self, controller: RealtimeSyncController, broker: InMemoryBroker
    ) -> None:
        async with controller:
            await controller.subscribe(CHANNEL)
            await controller.subscribe(DirectLocator.between("u1", "u2"))
            assert len(broker.topics) == 2

        assert broker.topics == set()
        assert controller.active_topics == set()


class TestOpenConversation:
    """Tests for topic switching and threads."""

    async def test_switch_releases_previous_topic(
        self, controller: RealtimeSyncController, broker: InMemoryBroker
    ) -> None:
        await controller.open_conversation(CHANNEL)
        await controller.open_conversation(ChannelLocator(channel_id="c2"))

        assert broker.topics == {"c2"}
        assert controller.active_topics == {"c2"}

    async def test_stray_event_after_switch_dropped(
        self,
        controller: RealtimeSyncController,
        store: MessageStore,
    ) -> None:
        await controller.open_conversation(CHANNEL)
        await controller.open_conversation(ChannelLocator(channel_id="c2"))

        controller.handle_event(
            "c1", {"kind": "created", "message": wire(create_message(id="late"))}
        )

        assert "late" not in store

    async def test_open_thread_loads_replies(
        self,
        controller: RealtimeSyncController,
        fetcher: MagicMock,
        store: MessageStore,
    ) -> None:
        store.upsert(create_message(id="m1", reply_count=5))
        fetcher.fetch_thread_replies.return_value = [
            create_message(id="r1", parent_id="m1", minutes=1),
            create_message(id="r2", parent_id="m1", minutes=2),
        ]

        assert await controller.open_thread("m1") is True

        assert store.view_thread("m1").ids() == ["m1", "r1", "r2"]
        parent = store.get("m1")
        assert parent is not None
        assert parent.reply_count == 2

    async def test_open_thread_failure(
        self, controller: RealtimeSyncController, fetcher: MagicMock
    ) -> None:
        fetcher.fetch_thread_replies.side_effect = ConnectionError("down")

        assert await controller.open_thread("m1") is False


class TestHandleEvent:
    """Tests for inbound event dispatch."""

    @pytest.fixture
    async def subscribed(
        self, controller: RealtimeSyncController
    ) -> RealtimeSyncController:
        await controller.subscribe(CHANNEL)
        return controller

    async def test_created(
        self,
        subscribed: RealtimeSyncController,
        broker: InMemoryBroker,
        store: MessageStore,
    ) -> None:
        await broker.publish(
            "c1", {"kind": "created", "message": wire(create_message())}
        )

        assert "m1" in store

    async def test_duplicate_created_is_idempotent(
        self, subscribed: RealtimeSyncController, store: MessageStore
    ) -> None:
        payload = {"kind": "created", "message": wire(create_message())}

        subscribed.handle_event("c1", payload)
        subscribed.handle_event("c1", payload)

        assert len(store) == 1

    async def test_created_reply_increments_parent(
        self, subscribed: RealtimeSyncController, store: MessageStore
    ) -> None:
        store.upsert(create_message(id="m1", reply_count=3))
        payload = {
            "kind": "created",
            "message": wire(create_message(id="r9", parent_id="m1", minutes=1)),
        }

        subscribed.handle_event("c1", payload)
        subscribed.handle_event("c1", payload)

        parent = store.get("m1")
        assert parent is not None
        assert parent.reply_count == 4

    async def test_updated_merges(
        self, subscribed: RealtimeSyncController, store: MessageStore
    ) -> None:
        store.upsert(create_message(author_name="Alice"))

        subscribed.handle_event(
            "c1",
            {
                "kind": "updated",
                "message": {
                    "id": "m1",
                    "author_id": "u1",
                    "channel_id": "c1",
                    "content": "edited",
                },
            },
        )

        held = store.get("m1")
        assert held is not None
        assert held.content == "edited"
        assert held.author_name == "Alice"

    async def test_deleted(
        self, subscribed: RealtimeSyncController, store: MessageStore
    ) -> None:
        store.upsert(create_message())

        subscribed.handle_event("c1", {"kind": "deleted", "message_id": "m1"})
        subscribed.handle_event("c1", {"kind": "deleted", "message_id": "m1"})

        assert "m1" not in store

    async def test_member_profile_changed(
        self, subscribed: RealtimeSyncController, store: MessageStore
    ) -> None:
        store.upsert(create_message())

        subscribed.handle_event(
            "c1",
            {
                "kind": "member_profile_changed",
                "author_id": "u1",
                "display_name": "Alice",
                "avatar_url": None,
                "has_custom_name": True,
                "has_custom_image": False,
            },
        )

        held = store.get("m1")
        assert held is not None
        assert held.author_name == "Alice"

    async def test_malformed_event_dropped(
        self, subscribed: RealtimeSyncController, store: MessageStore
    ) -> None:
        subscribed.handle_event("c1", {"kind": "created", "message": {"id": ""}})
        subscribed.handle_event("c1", {"kind": "bogus"})

        assert len(store) == 0

    async def test_inactive_topic_dropped(
        self, controller: RealtimeSyncController, store: MessageStore
    ) -> None:
        controller.handle_event(
            "c1", {"kind": "created", "message": wire(create_message())}
        )

        assert len(store) == 0


class TestResync:
    """Tests for resync after reconnect."""

    async def test_resync_refetches_subscribed_topics(
        self,
        controller: RealtimeSyncController,
        fetcher: MagicMock,
        store: MessageStore,
    ) -> None:
        await controller.subscribe(CHANNEL)
        fetcher.fetch_conversation_messages.return_value = [create_message(id="m7")]

        await controller.resync()

        assert "m7" in store
        assert fetcher.fetch_conversation_messages.await_count == 2


class TestSendMessage:
    """Tests for optimistic sends."""

    @pytest.fixture
    def draft(self) -> MessageDraft:
        return MessageDraft(content="hi", author_id="u1", locator=CHANNEL)

    async def test_provisional_visible_then_confirmed(
        self,
        store: MessageStore,
        broker: InMemoryBroker,
        fetcher: MagicMock,
        logger: structlog.stdlib.BoundLogger,
        draft: MessageDraft,
    ) -> None:
        seen: list[list[str]] = []

        async def post_message(posted: MessageDraft) -> Message:
            seen.append(store.view_conversation(CHANNEL).ids())
            return create_message(id="real", content=posted.content)

        writer = MagicMock()
        writer.post_message = AsyncMock(side_effect=post_message)
        controller = RealtimeSyncController(store, broker, fetcher, logger, writer)

        message = await controller.send_message(draft)

        assert message.id == "real"
        assert len(seen[0]) == 1
        assert seen[0][0].startswith("provisional-")
        assert store.view_conversation(CHANNEL).ids() == ["real"]

    async def test_failure_discards_provisional(
        self,
        store: MessageStore,
        broker: InMemoryBroker,
        fetcher: MagicMock,
        logger: structlog.stdlib.BoundLogger,
        draft: MessageDraft,
    ) -> None:
        writer = MagicMock()
        writer.post_message = AsyncMock(side_effect=ConnectionError("down"))
        controller = RealtimeSyncController(store, broker, fetcher, logger, writer)

        with pytest.raises(ConnectionError):
            await controller.send_message(draft)

        assert len(store) == 0

    async def test_without_writer(
        self, controller: RealtimeSyncController, draft: MessageDraft
    ) -> None:
        with pytest.raises(RuntimeError):
            await controller.send_message(draft)
