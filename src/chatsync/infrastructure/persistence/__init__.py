"""Persistence infrastructure."""

from chatsync.infrastructure.persistence.database import Database
from chatsync.infrastructure.persistence.message_repository import (
    SqliteMessageRepository,
)
from chatsync.infrastructure.persistence.similarity_index import (
    EmbeddingRow,
    SqliteSimilarityIndex,
)

__all__ = [
    "Database",
    "EmbeddingRow",
    "SqliteMessageRepository",
    "SqliteSimilarityIndex",
]
