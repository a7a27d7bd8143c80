"""Tests for the LiteLLM embedding service and factory."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from chatsync.config.models import EmbeddingConfig
from chatsync.domain.errors import EmbeddingDimensionError
from chatsync.infrastructure.embedding.dimension import (
    DimensionAdaptingEmbeddingService,
)
from chatsync.infrastructure.embedding.litellm_embedding import (
    LiteLLMEmbeddingService,
    create_embedding_service,
)
from chatsync.infrastructure.embedding.mock_embedding import MockEmbeddingService


@pytest.fixture
def config() -> EmbeddingConfig:
    return EmbeddingConfig(
        model_id="ollama/nomic-embed-text",
        native_dimension=3,
        timeout=5.0,
        client_args={"api_base": "http://localhost:11434"},
    )


def embedding_response(*items: dict) -> SimpleNamespace:
    return SimpleNamespace(data=list(items))


class TestLiteLLMEmbeddingService:
    """Tests for LiteLLMEmbeddingService."""

    async def test_embed_many_single_request(self, config: EmbeddingConfig) -> None:
        response = embedding_response(
            {"index": 1, "embedding": [0.4, 0.5, 0.6]},
            {"index": 0, "embedding": [0.1, 0.2, 0.3]},
        )
        with patch(
            "chatsync.infrastructure.embedding.litellm_embedding.litellm.aembedding",
            new=AsyncMock(return_value=response),
        ) as aembedding:
            service = LiteLLMEmbeddingService(config)
            vectors = await service.embed_many(["first", "second"])

        assert vectors == [[0.1, 0.2, 0.3], [0.4, 0.5, 0.6]]
        aembedding.assert_awaited_once_with(
            model="ollama/nomic-embed-text",
            input=["first", "second"],
            timeout=5.0,
            api_base="http://localhost:11434",
        )

    async def test_embed_accepts_object_items(self, config: EmbeddingConfig) -> None:
        response = embedding_response(
            SimpleNamespace(index=0, embedding=[1, 0, 0])  # type: ignore[arg-type]
        )
        with patch(
            "chatsync.infrastructure.embedding.litellm_embedding.litellm.aembedding",
            new=AsyncMock(return_value=response),
        ):
            vector = await LiteLLMEmbeddingService(config).embed("hello")

        assert vector == [1.0, 0.0, 0.0]

    async def test_empty_input_skips_request(self, config: EmbeddingConfig) -> None:
        with patch(
            "chatsync.infrastructure.embedding.litellm_embedding.litellm.aembedding",
            new=AsyncMock(),
        ) as aembedding:
            assert await LiteLLMEmbeddingService(config).embed_many([]) == []

        aembedding.assert_not_awaited()

    async def test_unexpected_dimension(self, config: EmbeddingConfig) -> None:
        response = embedding_response({"index": 0, "embedding": [0.1, 0.2]})
        with patch(
            "chatsync.infrastructure.embedding.litellm_embedding.litellm.aembedding",
            new=AsyncMock(return_value=response),
        ):
            with pytest.raises(EmbeddingDimensionError):
                await LiteLLMEmbeddingService(config).embed("hello")

    async def test_provider_error_propagates(self, config: EmbeddingConfig) -> None:
        with patch(
            "chatsync.infrastructure.embedding.litellm_embedding.litellm.aembedding",
            new=AsyncMock(side_effect=RuntimeError("provider down")),
        ):
            with pytest.raises(RuntimeError, match="provider down"):
                await LiteLLMEmbeddingService(config).embed("hello")

    def test_dimension_is_native(self, config: EmbeddingConfig) -> None:
        assert LiteLLMEmbeddingService(config).dimension == 3


class TestCreateEmbeddingService:
    """Tests for create_embedding_service."""

    def test_litellm_by_default(
        self, monkeypatch: pytest.MonkeyPatch, config: EmbeddingConfig
    ) -> None:
        monkeypatch.delenv("MOCK_EMBEDDING", raising=False)

        service = create_embedding_service(config)

        assert isinstance(service, DimensionAdaptingEmbeddingService)
        assert isinstance(service.inner, LiteLLMEmbeddingService)
        assert service.dimension == 3

    def test_mock_with_index_dimension(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("MOCK_EMBEDDING", "true")
        config = EmbeddingConfig(native_dimension=4, index_dimension=8)

        service = create_embedding_service(config)

        assert isinstance(service.inner, MockEmbeddingService)
        assert service.inner.dimension == 4
        assert service.dimension == 8

    async def test_mock_error(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("MOCK_EMBEDDING", "error")

        service = create_embedding_service(EmbeddingConfig(native_dimension=4))

        with pytest.raises(RuntimeError):
            await service.embed("hello")
