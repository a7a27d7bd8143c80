"""Tests for BrokerHub."""

import asyncio
from collections.abc import Callable

import pytest
import structlog
from aiohttp import WSCloseCode, WSMsgType, web
from aiohttp.test_utils import TestClient

from chatsync.domain.errors import MalformedEventError
from chatsync.presentation.http.broker_hub import BrokerHub

DELETED = {"kind": "deleted", "message_id": "m1"}


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    async with asyncio.timeout(timeout):
        while not predicate():
            await asyncio.sleep(0.01)


@pytest.fixture
def hub() -> BrokerHub:
    return BrokerHub(logger=structlog.stdlib.get_logger("test"))


@pytest.fixture
async def client(hub: BrokerHub, aiohttp_client) -> TestClient:
    app = web.Application()
    app.router.add_get("/ws", hub.handle_websocket)
    return await aiohttp_client(app)


class TestSubscriptions:
    """Tests for subscribe and unsubscribe frames."""

    async def test_subscriber_receives_event(
        self, client: TestClient, hub: BrokerHub
    ) -> None:
        ws = await client.ws_connect("/ws")
        await ws.send_json({"action": "subscribe", "topic": "c1"})
        await wait_until(lambda: hub.subscriber_count("c1") == 1)

        delivered = await hub.publish("c1", DELETED)

        assert delivered == 1
        assert await ws.receive_json(timeout=1.0) == {"topic": "c1", "event": DELETED}
        await ws.close()

    async def test_no_delivery_to_other_topics(
        self, client: TestClient, hub: BrokerHub
    ) -> None:
        ws = await client.ws_connect("/ws")
        await ws.send_json({"action": "subscribe", "topic": "c1"})
        await wait_until(lambda: hub.subscriber_count("c1") == 1)

        assert await hub.publish("c2", DELETED) == 0
        await ws.close()

    async def test_unsubscribe(self, client: TestClient, hub: BrokerHub) -> None:
        ws = await client.ws_connect("/ws")
        await ws.send_json({"action": "subscribe", "topic": "c1"})
        await wait_until(lambda: hub.subscriber_count("c1") == 1)

        await ws.send_json({"action": "unsubscribe", "topic": "c1"})

        await wait_until(lambda: hub.subscriber_count("c1") == 0)
        await ws.close()

    async def test_disconnect_drops_subscriptions(
        self, client: TestClient, hub: BrokerHub
    ) -> None:
        ws = await client.ws_connect("/ws")
        await ws.send_json({"action": "subscribe", "topic": "c1"})
        await ws.send_json({"action": "subscribe", "topic": "c2"})
        await wait_until(lambda: hub.subscriber_count("c2") == 1)

        await ws.close()

        await wait_until(lambda: hub.connection_count == 0)
        assert hub.subscriber_count("c1") == 0
        assert hub.subscriber_count("c2") == 0


class TestPublishFrames:
    """Tests for publish frames sent by clients."""

    async def test_publish_fans_out(self, client: TestClient, hub: BrokerHub) -> None:
        first = await client.ws_connect("/ws")
        second = await client.ws_connect("/ws")
        publisher = await client.ws_connect("/ws")
        for ws in (first, second):
            await ws.send_json({"action": "subscribe", "topic": "c1"})
        await wait_until(lambda: hub.subscriber_count("c1") == 2)

        await publisher.send_json(
            {"action": "publish", "topic": "c1", "event": DELETED}
        )

        for ws in (first, second):
            assert await ws.receive_json(timeout=1.0) == {
                "topic": "c1",
                "event": DELETED,
            }
        for ws in (first, second, publisher):
            await ws.close()

    async def test_malformed_event_rejected(
        self, client: TestClient, hub: BrokerHub
    ) -> None:
        subscriber = await client.ws_connect("/ws")
        await subscriber.send_json({"action": "subscribe", "topic": "c1"})
        await wait_until(lambda: hub.subscriber_count("c1") == 1)
        publisher = await client.ws_connect("/ws")

        await publisher.send_json(
            {"action": "publish", "topic": "c1", "event": {"kind": "exploded"}}
        )

        frame = await publisher.receive_json(timeout=1.0)
        assert "Malformed broker event" in frame["error"]
        await subscriber.close()
        await publisher.close()


class TestInvalidFrames:
    """Tests for frames the hub rejects."""

    @pytest.mark.parametrize(
        ("frame", "error"),
        [
            ("not json", "Invalid JSON"),
            ('["subscribe"]', "Frame must be an object"),
            ('{"action": "subscribe"}', "Missing required field: topic"),
            ('{"action": "shout", "topic": "c1"}', "Invalid action: shout"),
        ],
    )
    async def test_error_frame(
        self, client: TestClient, frame: str, error: str
    ) -> None:
        ws = await client.ws_connect("/ws")

        await ws.send_str(frame)

        assert await ws.receive_json(timeout=1.0) == {"error": error}
        await ws.close()


class TestHubPublish:
    """Tests for BrokerHub.publish and close."""

    async def test_publish_validates_event(self, hub: BrokerHub) -> None:
        with pytest.raises(MalformedEventError):
            await hub.publish("c1", {"kind": "deleted"})

    async def test_publish_without_subscribers(self, hub: BrokerHub) -> None:
        assert await hub.publish("c1", DELETED) == 0

    async def test_close_disconnects_clients(
        self, client: TestClient, hub: BrokerHub
    ) -> None:
        ws = await client.ws_connect("/ws")
        await ws.send_json({"action": "subscribe", "topic": "c1"})
        await wait_until(lambda: hub.subscriber_count("c1") == 1)

        receiving = asyncio.create_task(ws.receive(timeout=2.0))

        await hub.close()

        msg = await receiving
        assert msg.type == WSMsgType.CLOSE
        assert msg.data == WSCloseCode.GOING_AWAY
        assert hub.connection_count == 0
        assert hub.subscriber_count("c1") == 0
