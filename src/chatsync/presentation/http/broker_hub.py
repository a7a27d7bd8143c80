"""Websocket broker hub.

Clients connect to ``GET /ws`` and exchange JSON frames:

- client → hub: ``{"action": "subscribe"|"unsubscribe", "topic": ...}``
  and ``{"action": "publish", "topic": ..., "event": {...}}``
- hub → client: ``{"topic": ..., "event": {...}}`` for every event published
  on a subscribed topic, ``{"error": ...}`` for a rejected frame.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from aiohttp import WSCloseCode, WSMsgType, web
from structlog.stdlib import BoundLogger

from chatsync.domain.entities.broker_event import parse_broker_event
from chatsync.domain.errors import MalformedEventError


@dataclass(eq=False)
class Connection:
    """A connected websocket client and its topics."""

    ws: web.WebSocketResponse
    topics: set[str] = field(default_factory=set)


class BrokerHub:
    """Fans published events out to the websocket subscribers of a topic.

    Events are validated against the broker event union before they are
    relayed, and relayed unchanged.
    """

    def __init__(self, logger: BoundLogger, heartbeat: float | None = None) -> None:
        self._logger = logger
        self._heartbeat = heartbeat
        self._connections: set[Connection] = set()
        self._subscribers: dict[str, set[Connection]] = {}

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, ()))

    async def handle_websocket(self, request: web.Request) -> web.WebSocketResponse:
        """Handle GET /ws for the lifetime of one connection."""
        ws = web.WebSocketResponse(heartbeat=self._heartbeat)
        await ws.prepare(request)

        conn = Connection(ws=ws)
        self._connections.add(conn)
        self._logger.info("Broker client connected", remote=request.remote)

        try:
            async for msg in ws:
                if msg.type == WSMsgType.TEXT:
                    await self._handle_frame(conn, msg.data)
                elif msg.type == WSMsgType.ERROR:
                    self._logger.warning(
                        "Broker client connection error", error=str(ws.exception())
                    )
        finally:
            self._disconnect(conn)
            self._logger.info("Broker client disconnected", remote=request.remote)

        return ws

    async def _handle_frame(self, conn: Connection, data: str) -> None:
        try:
            frame = json.loads(data)
        except json.JSONDecodeError:
            await conn.ws.send_json({"error": "Invalid JSON"})
            return

        if not isinstance(frame, dict):
            await conn.ws.send_json({"error": "Frame must be an object"})
            return

        action = frame.get("action")
        topic = frame.get("topic")
        if not isinstance(topic, str) or not topic:
            await conn.ws.send_json({"error": "Missing required field: topic"})
            return

        if action == "subscribe":
            conn.topics.add(topic)
            self._subscribers.setdefault(topic, set()).add(conn)
            self._logger.debug("Topic subscribed", topic=topic)
        elif action == "unsubscribe":
            self._remove_subscription(conn, topic)
            self._logger.debug("Topic unsubscribed", topic=topic)
        elif action == "publish":
            try:
                await self.publish(topic, frame.get("event"))
            except MalformedEventError as e:
                await conn.ws.send_json({"error": str(e)})
        else:
            await conn.ws.send_json({"error": f"Invalid action: {action}"})

    async def publish(self, topic: str, event: Any) -> int:
        """Relay an event to every subscriber of a topic.

        Subscribers whose connection fails are dropped.

        Returns:
            The number of subscribers the event was delivered to.

        Raises:
            MalformedEventError: If the event is not a valid broker event.
        """
        parse_broker_event(event)

        delivered = 0
        for conn in list(self._subscribers.get(topic, ())):
            try:
                await conn.ws.send_json({"topic": topic, "event": event})
            except (ConnectionResetError, RuntimeError) as e:
                self._logger.warning(
                    "Failed to deliver event", topic=topic, error=str(e)
                )
                self._disconnect(conn)
                continue
            delivered += 1

        self._logger.debug("Event published", topic=topic, delivered=delivered)
        return delivered

    def _remove_subscription(self, conn: Connection, topic: str) -> None:
        conn.topics.discard(topic)
        subscribers = self._subscribers.get(topic)
        if subscribers is None:
            return
        subscribers.discard(conn)
        if not subscribers:
            del self._subscribers[topic]

    def _disconnect(self, conn: Connection) -> None:
        for topic in list(conn.topics):
            self._remove_subscription(conn, topic)
        self._connections.discard(conn)

    async def close(self) -> None:
        """Close every client connection."""
        for conn in list(self._connections):
            await conn.ws.close(code=WSCloseCode.GOING_AWAY, message=b"Server shutdown")
            self._disconnect(conn)
