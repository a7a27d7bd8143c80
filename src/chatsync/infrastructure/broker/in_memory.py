"""In-process EventBroker implementation."""

from typing import Any

from structlog.stdlib import BoundLogger

from chatsync.domain.services.event_broker import EventCallback


class InMemoryBroker:
    """Delivers published events synchronously to callbacks in this process.

    One callback per topic. Subscribing a topic again replaces its callback.
    """

    def __init__(self, logger: BoundLogger) -> None:
        self._logger = logger
        self._callbacks: dict[str, EventCallback] = {}

    @property
    def topics(self) -> set[str]:
        """Return the topics with a bound callback."""
        return set(self._callbacks)

    async def subscribe(self, topic: str, on_event: EventCallback) -> None:
        self._callbacks[topic] = on_event

    async def unsubscribe(self, topic: str) -> None:
        self._callbacks.pop(topic, None)

    async def publish(self, topic: str, event: dict[str, Any]) -> None:
        callback = self._callbacks.get(topic)
        if callback is None:
            self._logger.debug("No subscriber for topic", topic=topic)
            return
        try:
            callback(topic, event)
        except Exception as e:
            self._logger.error(
                "Event callback failed", topic=topic, error=str(e), exc_info=True
            )
