"""Background job entities processed by the job runner."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

import ulid
from pydantic import BaseModel, Field


class JobType(str, Enum):
    """Job type enumeration."""

    VECTORIZE = "vectorize"
    PURGE_EMBEDDINGS = "purge_embeddings"


class Job(BaseModel):
    """Base class for all background jobs."""

    id: str = Field(default_factory=lambda: str(ulid.new()))
    type: JobType
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = "internal"
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def get_identity_key(self) -> str:
        """Return the identity key for deduplication."""
        return self.id


class VectorizeJob(Job):
    """Drain unvectorized messages into the similarity index.

    Payload:
        min_threshold: Optional override of the configured batch threshold.
    """

    type: Literal[JobType.VECTORIZE] = JobType.VECTORIZE

    def get_identity_key(self) -> str:
        """Return a fixed key so that queued triggers collapse into one run."""
        return "vectorize"


class PurgeEmbeddingsJob(Job):
    """Delete index records of deleted messages.

    Payload:
        message_ids: Ids of the deleted messages.
    """

    type: Literal[JobType.PURGE_EMBEDDINGS] = JobType.PURGE_EMBEDDINGS

    @property
    def message_ids(self) -> list[str]:
        return [str(i) for i in self.payload.get("message_ids", [])]
