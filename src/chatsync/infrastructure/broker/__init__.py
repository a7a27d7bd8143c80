"""EventBroker implementations."""

from chatsync.infrastructure.broker.in_memory import InMemoryBroker
from chatsync.infrastructure.broker.websocket_client import WebSocketBrokerClient

__all__ = ["InMemoryBroker", "WebSocketBrokerClient"]
