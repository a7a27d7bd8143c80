"""Background job runner."""

from __future__ import annotations

from typing import TYPE_CHECKING

from structlog.stdlib import BoundLogger

from chatsync.domain.entities.job import Job

if TYPE_CHECKING:
    from chatsync.application.handlers.job_handlers import JobHandlerRegistry


class JobRunner:
    """Dispatches dequeued jobs to their registered handlers."""

    def __init__(self, registry: JobHandlerRegistry, logger: BoundLogger) -> None:
        """Initialize the runner.

        Args:
            registry: Handlers by job type.
            logger: Logger instance.
        """
        self._registry = registry
        self._logger = logger

    async def process(self, job: Job) -> bool:
        """Process a job with its handler.

        Args:
            job: The job to process.

        Returns:
            True if a handler ran, False if none is registered.

        Raises:
            Exception: If the handler fails.
        """
        self._logger.info("Processing job", job_id=job.id, job_type=job.type.value)

        handler = self._registry.get_handler(job.type)
        if handler is None:
            self._logger.warning(
                "No handler found for job type", job_type=job.type.value
            )
            return False

        try:
            await handler.handle(job)
        except Exception as e:
            self._logger.error(
                "Error processing job",
                job_id=job.id,
                job_type=job.type.value,
                error=str(e),
                exc_info=True,
            )
            raise

        self._logger.info("Job completed", job_id=job.id, job_type=job.type.value)
        return True
