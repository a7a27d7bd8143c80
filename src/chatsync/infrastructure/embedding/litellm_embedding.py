"""Embedding service backed by LiteLLM."""

import os
from typing import Any

import litellm

from chatsync.config.models import EmbeddingConfig
from chatsync.domain.errors import EmbeddingDimensionError
from chatsync.infrastructure.embedding.dimension import (
    DimensionAdaptingEmbeddingService,
)
from chatsync.infrastructure.embedding.mock_embedding import MockEmbeddingService


class LiteLLMEmbeddingService:
    """Embedding service calling any provider supported by LiteLLM.

    Args:
        config: Embedding configuration (model id, native dimension, extra
            request params and client args such as api_base).
    """

    def __init__(self, config: EmbeddingConfig) -> None:
        self._config = config

    @property
    def dimension(self) -> int:
        return self._config.native_dimension

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_many([text])
        return vectors[0]

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed texts with a single provider request.

        Raises:
            EmbeddingDimensionError: If the provider returns vectors of an
                unexpected dimension.
        """
        if not texts:
            return []

        response = await litellm.aembedding(
            model=self._config.model_id,
            input=texts,
            timeout=self._config.timeout,
            **self._config.client_args,
            **self._config.params,
        )
        vectors = [_extract_vector(item) for item in _sorted_items(response.data)]

        for vector in vectors:
            if len(vector) != self.dimension:
                raise EmbeddingDimensionError(
                    f"Model {self._config.model_id} returned {len(vector)} "
                    f"dimensions, expected {self.dimension}"
                )
        return vectors


def _sorted_items(data: list[Any]) -> list[Any]:
    return sorted(data, key=lambda item: _field(item, "index") or 0)


def _extract_vector(item: Any) -> list[float]:
    return [float(v) for v in _field(item, "embedding")]


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


EmbeddingBackend = LiteLLMEmbeddingService | MockEmbeddingService


def create_embedding_service(
    config: EmbeddingConfig,
) -> DimensionAdaptingEmbeddingService:
    """Create the embedding service used for both indexing and querying.

    Args:
        config: Embedding configuration.

    Returns:
        A service producing vectors of the index dimension. Backed by
        MockEmbeddingService if MOCK_EMBEDDING=true (or raising on every call
        if MOCK_EMBEDDING=error), otherwise by LiteLLM.
    """
    mock_embedding = os.getenv("MOCK_EMBEDDING", "").lower()

    backend: EmbeddingBackend
    if mock_embedding == "true":
        backend = MockEmbeddingService(dimension=config.native_dimension)
    elif mock_embedding == "error":
        backend = MockEmbeddingService(
            dimension=config.native_dimension, raise_error=True
        )
    else:
        backend = LiteLLMEmbeddingService(config)

    return DimensionAdaptingEmbeddingService(backend, config.target_dimension)
