"""Repository protocols."""

from chatsync.domain.repositories.message_repository import (
    ConversationFetcher,
    MessageRepository,
)
from chatsync.domain.repositories.similarity_index import SimilarityIndex

__all__ = ["ConversationFetcher", "MessageRepository", "SimilarityIndex"]
