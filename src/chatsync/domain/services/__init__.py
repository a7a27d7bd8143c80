"""Protocols for external services."""

from chatsync.domain.services.embedding_service import EmbeddingService
from chatsync.domain.services.event_broker import EventBroker, EventCallback
from chatsync.domain.services.message_writer import MessageWriter

__all__ = ["EmbeddingService", "EventBroker", "EventCallback", "MessageWriter"]
