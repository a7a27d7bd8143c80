"""Embedding infrastructure."""

from chatsync.infrastructure.embedding.dimension import (
    DimensionAdaptingEmbeddingService,
    expand_vector,
)
from chatsync.infrastructure.embedding.litellm_embedding import (
    LiteLLMEmbeddingService,
    create_embedding_service,
)
from chatsync.infrastructure.embedding.mock_embedding import MockEmbeddingService

__all__ = [
    "DimensionAdaptingEmbeddingService",
    "LiteLLMEmbeddingService",
    "MockEmbeddingService",
    "create_embedding_service",
    "expand_vector",
]
