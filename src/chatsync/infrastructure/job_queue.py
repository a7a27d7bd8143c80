"""JobQueue implementation with deduplication and delayed enqueue support."""

import asyncio

from chatsync.domain.entities.job import Job


class JobQueue:
    """In-memory background job queue.

    Decouples work such as vectorization from the request that triggered it.

    Supports:
    - Deduplication based on identity_key: a newer job replaces a pending one
    - Delayed enqueue with cancellation
    - Processing state tracking
    """

    def __init__(self) -> None:
        """Initialize the job queue."""
        self._queue: asyncio.Queue[Job] = asyncio.Queue()
        self._pending: dict[str, Job] = {}
        # Keyed by job.id so several jobs with one identity_key can run
        self._processing: dict[str, Job] = {}
        self._delay_tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def pending_count(self) -> int:
        """Return the number of pending jobs."""
        return len(self._pending)

    @property
    def processing_count(self) -> int:
        """Return the number of jobs being processed."""
        return len(self._processing)

    def is_pending(self, job: Job) -> bool:
        """Return True if a job with the same identity key waits in the queue."""
        return job.get_identity_key() in self._pending

    async def enqueue(self, job: Job, delay: float = 0) -> None:
        """Add a job to the queue.

        Args:
            job: The job to enqueue.
            delay: Delay in seconds before the job is added to the queue.
                   Defaults to 0 (immediate enqueue).
        """
        key = job.get_identity_key()

        # A newer job supersedes a delayed one with the same key
        delayed = self._delay_tasks.pop(key, None)
        if delayed is not None:
            delayed.cancel()
            try:
                await delayed
            except asyncio.CancelledError:
                pass

        if delay > 0:
            self._delay_tasks[key] = asyncio.create_task(
                self._delayed_enqueue(job, delay)
            )
            return

        # A stale job left in the queue is skipped by dequeue()
        self._pending[key] = job
        await self._queue.put(job)

    async def _delayed_enqueue(self, job: Job, delay: float) -> None:
        key = job.get_identity_key()
        try:
            await asyncio.sleep(delay)
            self._pending[key] = job
            await self._queue.put(job)
        finally:
            if self._delay_tasks.get(key) is asyncio.current_task():
                del self._delay_tasks[key]

    async def dequeue(self) -> Job:
        """Get the next job from the queue.

        Skips stale jobs, those superseded by a newer job with the same
        identity_key.

        Returns:
            The next job to process.
        """
        while True:
            job = await self._queue.get()
            key = job.get_identity_key()

            current = self._pending.get(key)
            if current is not None and current.id == job.id:
                del self._pending[key]
                self._processing[job.id] = job
                return job

    def mark_done(self, job: Job) -> None:
        """Mark a job as done processing.

        Args:
            job: The job that has been processed.
        """
        self._processing.pop(job.id, None)

    async def close(self) -> None:
        """Cancel every delayed enqueue that has not fired yet."""
        tasks = list(self._delay_tasks.values())
        self._delay_tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
