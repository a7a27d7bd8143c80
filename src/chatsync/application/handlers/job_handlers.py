"""Job handler implementations."""

from chatsync.application.handlers import JobHandler
from chatsync.application.services.vectorization_pipeline import (
    VectorizationPipeline,
)
from chatsync.domain.entities.job import Job, JobType, PurgeEmbeddingsJob


class VectorizeJobHandler:
    """Runs one vectorization batch."""

    def __init__(self, pipeline: VectorizationPipeline, min_threshold: int) -> None:
        """Initialize the handler.

        Args:
            pipeline: Vectorization pipeline.
            min_threshold: Threshold used when the job payload has none.
        """
        self._pipeline = pipeline
        self._min_threshold = min_threshold

    async def handle(self, job: Job) -> None:
        """Run a batch with the payload threshold or the configured one."""
        threshold = int(job.payload.get("min_threshold", self._min_threshold))
        await self._pipeline.run_batch(threshold)


class PurgeEmbeddingsJobHandler:
    """Deletes index records of deleted messages."""

    def __init__(self, pipeline: VectorizationPipeline) -> None:
        self._pipeline = pipeline

    async def handle(self, job: Job) -> None:
        message_ids = (
            job.message_ids
            if isinstance(job, PurgeEmbeddingsJob)
            else [str(i) for i in job.payload.get("message_ids", [])]
        )
        await self._pipeline.purge_embeddings(message_ids)


class JobHandlerRegistry:
    """Registry for job handlers."""

    def __init__(self) -> None:
        """Initialize the registry."""
        self._handlers: dict[JobType, JobHandler] = {}

    def register(self, job_type: JobType, handler: JobHandler) -> None:
        """Register a handler for a job type, replacing any previous one.

        Args:
            job_type: The job type to handle.
            handler: The handler to register.
        """
        self._handlers[job_type] = handler

    def get_handler(self, job_type: JobType) -> JobHandler | None:
        """Get handler for a job type.

        Args:
            job_type: The job type.

        Returns:
            The handler if registered, None otherwise.
        """
        return self._handlers.get(job_type)
