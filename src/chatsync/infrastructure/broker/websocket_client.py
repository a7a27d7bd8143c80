"""EventBroker client speaking to the websocket broker hub."""

import asyncio
import json
from collections.abc import Awaitable, Callable
from typing import Any

import aiohttp
from structlog.stdlib import BoundLogger

from chatsync.config.models import BrokerConfig
from chatsync.domain.services.event_broker import EventCallback

ReconnectHook = Callable[[], Awaitable[None]]


class WebSocketBrokerClient:
    """Websocket EventBroker client with automatic reconnection.

    A background task owns the connection. After a transport error it
    reconnects with exponential backoff, re-sends every subscription and
    runs the ``on_reconnect`` hook, typically ``RealtimeSyncController.resync``,
    because events published while disconnected are lost.

    Frames sent: ``{"action": "subscribe"|"unsubscribe", "topic"}`` and
    ``{"action": "publish", "topic", "event"}``. Frames received:
    ``{"topic", "event"}``.
    """

    def __init__(
        self,
        config: BrokerConfig,
        session: aiohttp.ClientSession,
        logger: BoundLogger,
        on_reconnect: ReconnectHook | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Broker URL, backoff and heartbeat settings.
            session: HTTP session used for the websocket connection.
            logger: Logger instance.
            on_reconnect: Coroutine run after every reconnection.
        """
        self._config = config
        self._session = session
        self._logger = logger
        self._on_reconnect = on_reconnect
        self._callbacks: dict[str, EventCallback] = {}
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._connected = asyncio.Event()
        self._task: asyncio.Task[None] | None = None

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    def set_reconnect_hook(self, hook: ReconnectHook | None) -> None:
        self._on_reconnect = hook

    async def connect(self, timeout: float | None = None) -> None:
        """Start the connection task and wait for the first connection.

        Raises:
            ConnectionError: If no connection is up within the timeout.
        """
        if self._task is None:
            self._task = asyncio.create_task(self._run())
        try:
            async with asyncio.timeout(timeout):
                await self._connected.wait()
        except TimeoutError as e:
            raise ConnectionError(
                f"Broker not reachable at {self._config.url}"
            ) from e

    async def close(self) -> None:
        """Stop reconnecting and close the connection."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self._ws is not None:
            await self._ws.close()
            self._ws = None
        self._connected.clear()

    async def subscribe(self, topic: str, on_event: EventCallback) -> None:
        self._callbacks[topic] = on_event
        try:
            await self._send({"action": "subscribe", "topic": topic})
        except ConnectionError:
            self._callbacks.pop(topic, None)
            raise

    async def unsubscribe(self, topic: str) -> None:
        if self._callbacks.pop(topic, None) is None:
            return
        # The hub drops every subscription of a closed connection
        if self.is_connected:
            await self._send({"action": "unsubscribe", "topic": topic})

    async def publish(self, topic: str, event: dict[str, Any]) -> None:
        await self._send({"action": "publish", "topic": topic, "event": event})

    async def _send(self, frame: dict[str, Any]) -> None:
        ws = self._ws
        if ws is None or ws.closed:
            raise ConnectionError("Broker connection is not open")
        try:
            await ws.send_json(frame)
        except (aiohttp.ClientError, ConnectionResetError) as e:
            raise ConnectionError(f"Failed to send broker frame: {e}") from e

    async def _run(self) -> None:
        delay = self._config.reconnect_delay
        connected_before = False
        while True:
            try:
                async with self._session.ws_connect(
                    self._config.url, heartbeat=self._config.heartbeat
                ) as ws:
                    self._ws = ws
                    await self._resubscribe(ws)
                    self._connected.set()
                    delay = self._config.reconnect_delay
                    self._logger.info("Broker connected", url=self._config.url)

                    if connected_before and self._on_reconnect is not None:
                        await self._run_reconnect_hook(self._on_reconnect)
                    connected_before = True

                    await self._read(ws)
            except (aiohttp.ClientError, OSError) as e:
                self._logger.warning(
                    "Broker connection failed",
                    url=self._config.url,
                    error=str(e),
                    retry_in=delay,
                )
            finally:
                self._ws = None
                self._connected.clear()

            await asyncio.sleep(delay)
            delay = min(delay * 2, self._config.max_reconnect_delay)

    async def _resubscribe(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        for topic in list(self._callbacks):
            await ws.send_json({"action": "subscribe", "topic": topic})

    async def _run_reconnect_hook(self, hook: ReconnectHook) -> None:
        try:
            await hook()
        except Exception as e:
            self._logger.error("Reconnect hook failed", error=str(e), exc_info=True)

    async def _read(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                self._dispatch(msg.data)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                self._logger.warning(
                    "Broker connection error", error=str(ws.exception())
                )
                break
        self._logger.info("Broker connection closed", close_code=ws.close_code)

    def _dispatch(self, data: str) -> None:
        try:
            frame = json.loads(data)
        except json.JSONDecodeError:
            self._logger.warning("Dropping non-JSON broker frame")
            return

        if not isinstance(frame, dict) or "topic" not in frame or "event" not in frame:
            self._logger.debug("Ignoring broker frame", frame=frame)
            return

        topic = frame["topic"]
        callback = self._callbacks.get(topic)
        if callback is None:
            self._logger.debug("No subscriber for topic", topic=topic)
            return
        try:
            callback(topic, frame["event"])
        except Exception as e:
            self._logger.error(
                "Event callback failed", topic=topic, error=str(e), exc_info=True
            )
