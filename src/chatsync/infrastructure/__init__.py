"""Infrastructure layer."""

from chatsync.infrastructure.job_queue import JobQueue
from chatsync.infrastructure.persistence import Database

__all__ = ["Database", "JobQueue"]
