"""Tests for job handlers."""

from unittest.mock import AsyncMock, MagicMock

from chatsync.application.handlers import JobHandler
from chatsync.application.handlers.job_handlers import (
    JobHandlerRegistry,
    PurgeEmbeddingsJobHandler,
    VectorizeJobHandler,
)
from chatsync.domain.entities.job import Job, JobType, PurgeEmbeddingsJob, VectorizeJob


def create_pipeline() -> MagicMock:
    pipeline = MagicMock()
    pipeline.run_batch = AsyncMock(return_value=0)
    pipeline.purge_embeddings = AsyncMock(return_value=True)
    return pipeline


class TestVectorizeJobHandler:
    """Tests for VectorizeJobHandler."""

    async def test_uses_configured_threshold(self) -> None:
        pipeline = create_pipeline()
        handler = VectorizeJobHandler(pipeline, min_threshold=20)

        await handler.handle(VectorizeJob())

        pipeline.run_batch.assert_awaited_once_with(20)

    async def test_payload_overrides_threshold(self) -> None:
        pipeline = create_pipeline()
        handler = VectorizeJobHandler(pipeline, min_threshold=20)

        await handler.handle(VectorizeJob(payload={"min_threshold": 1}))

        pipeline.run_batch.assert_awaited_once_with(1)

    def test_satisfies_protocol(self) -> None:
        assert isinstance(VectorizeJobHandler(create_pipeline(), 1), JobHandler)


class TestPurgeEmbeddingsJobHandler:
    """Tests for PurgeEmbeddingsJobHandler."""

    async def test_purges_payload_ids(self) -> None:
        pipeline = create_pipeline()
        handler = PurgeEmbeddingsJobHandler(pipeline)

        await handler.handle(PurgeEmbeddingsJob(payload={"message_ids": ["m1", "m2"]}))

        pipeline.purge_embeddings.assert_awaited_once_with(["m1", "m2"])

    async def test_accepts_generic_job(self) -> None:
        pipeline = create_pipeline()
        handler = PurgeEmbeddingsJobHandler(pipeline)

        await handler.handle(
            Job(type=JobType.PURGE_EMBEDDINGS, payload={"message_ids": ["m3"]})
        )

        pipeline.purge_embeddings.assert_awaited_once_with(["m3"])


class TestJobHandlerRegistry:
    """Tests for JobHandlerRegistry."""

    def test_register_and_get(self) -> None:
        registry = JobHandlerRegistry()
        handler = PurgeEmbeddingsJobHandler(create_pipeline())

        registry.register(JobType.PURGE_EMBEDDINGS, handler)

        assert registry.get_handler(JobType.PURGE_EMBEDDINGS) is handler
        assert registry.get_handler(JobType.VECTORIZE) is None

    def test_register_replaces(self) -> None:
        registry = JobHandlerRegistry()
        first = VectorizeJobHandler(create_pipeline(), 1)
        second = VectorizeJobHandler(create_pipeline(), 2)

        registry.register(JobType.VECTORIZE, first)
        registry.register(JobType.VECTORIZE, second)

        assert registry.get_handler(JobType.VECTORIZE) is second
