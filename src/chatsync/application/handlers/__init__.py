"""Job handler module."""

from typing import Protocol, runtime_checkable

from chatsync.domain.entities.job import Job


@runtime_checkable
class JobHandler(Protocol):
    """Protocol for background job handlers."""

    async def handle(self, job: Job) -> None:
        """Run a job.

        Args:
            job: The job to run.
        """
        ...
