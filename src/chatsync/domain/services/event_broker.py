"""EventBroker protocol."""

from collections.abc import Callable
from typing import Any, Protocol

# Called with (topic, raw event payload)
EventCallback = Callable[[str, dict[str, Any]], None]


class EventBroker(Protocol):
    """Publish/subscribe transport keyed by topic."""

    async def subscribe(self, topic: str, on_event: EventCallback) -> None:
        """Bind a callback to a topic.

        Raises:
            ConnectionError: If the transport cannot complete the handshake.
        """
        ...

    async def unsubscribe(self, topic: str) -> None:
        """Remove the binding for a topic. Unknown topics are ignored."""
        ...

    async def publish(self, topic: str, event: dict[str, Any]) -> None:
        """Deliver an event to every subscriber of a topic."""
        ...
