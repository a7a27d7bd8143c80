"""Tests for ReplyGenerator."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import structlog

from chatsync.application.services.reply_generator import ReplyGenerator
from chatsync.config.models import GenerationConfig, LLMConfig, LoggingConfig
from chatsync.domain.entities.embedding_record import RetrievalFilters
from chatsync.infrastructure.llm.mock_model import MOCK_REPLY, MockModel
from chatsync.infrastructure.logging.setup import setup_logging


@pytest.fixture
def mock_llm_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Set MOCK_LLM=true environment variable."""
    monkeypatch.setenv("MOCK_LLM", "true")


@pytest.fixture
def generation_config() -> GenerationConfig:
    return GenerationConfig(
        system_prompt="Reply like this user.\n{{ context }}",
        llm=LLMConfig(model_id="anthropic/claude-sonnet-4-20250514"),
    )


@pytest.fixture
def logger() -> structlog.stdlib.BoundLogger:
    setup_logging(LoggingConfig(level="DEBUG", format="json"))
    return structlog.stdlib.get_logger("test")


@pytest.fixture
def retrieval() -> MagicMock:
    retrieval = MagicMock()
    retrieval.get_style_context = AsyncMock(
        return_value="Alice (2024-01-01 10:00): lol ok"
    )
    return retrieval


class TestReplyGenerator:
    """Tests for ReplyGenerator.generate."""

    async def test_returns_mock_reply(
        self,
        mock_llm_env: None,
        generation_config: GenerationConfig,
        retrieval: MagicMock,
        logger: structlog.stdlib.BoundLogger,
    ) -> None:
        generator = ReplyGenerator(generation_config, retrieval, logger, top_k=3)

        reply = await generator.generate("lunch?", RetrievalFilters(author_id="u1"))

        assert reply.text == MOCK_REPLY
        assert reply.context == "Alice (2024-01-01 10:00): lol ok"
        retrieval.get_style_context.assert_awaited_once_with(
            "lunch?", RetrievalFilters(author_id="u1"), top_k=3
        )

    async def test_context_rendered_into_system_prompt(
        self,
        generation_config: GenerationConfig,
        retrieval: MagicMock,
        logger: structlog.stdlib.BoundLogger,
    ) -> None:
        model = MockModel()
        generator = ReplyGenerator(generation_config, retrieval, logger)

        with patch(
            "chatsync.application.services.reply_generator.create_model",
            return_value=model,
        ):
            await generator.generate("lunch?", RetrievalFilters(author_id="u1"))

        assert model.last_system_prompt == (
            "Reply like this user.\nAlice (2024-01-01 10:00): lol ok"
        )

    async def test_empty_context_still_generates(
        self,
        mock_llm_env: None,
        generation_config: GenerationConfig,
        retrieval: MagicMock,
        logger: structlog.stdlib.BoundLogger,
    ) -> None:
        retrieval.get_style_context.return_value = ""
        generator = ReplyGenerator(generation_config, retrieval, logger)

        reply = await generator.generate("hi", RetrievalFilters(author_id="u1"))

        assert reply.text == MOCK_REPLY
        assert reply.context == ""

    async def test_llm_error_propagates(
        self,
        monkeypatch: pytest.MonkeyPatch,
        generation_config: GenerationConfig,
        retrieval: MagicMock,
        logger: structlog.stdlib.BoundLogger,
    ) -> None:
        monkeypatch.setenv("MOCK_LLM", "error")
        generator = ReplyGenerator(generation_config, retrieval, logger)

        with pytest.raises(Exception):
            await generator.generate("hi", RetrievalFilters(author_id="u1"))
