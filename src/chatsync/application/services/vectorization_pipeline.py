"""Batch vectorization of messages into the similarity index."""

import asyncio

from structlog.stdlib import BoundLogger

from chatsync.domain.entities.embedding_record import EmbeddingRecord
from chatsync.domain.entities.message import Message
from chatsync.domain.errors import PipelineError
from chatsync.domain.repositories.message_repository import MessageRepository
from chatsync.domain.repositories.similarity_index import SimilarityIndex
from chatsync.domain.services.embedding_service import EmbeddingService


class VectorizationPipeline:
    """Drains unvectorized messages into the similarity index.

    Processing is at-least-once: embedding, index upsert and flag update are
    not one transaction, so a failure after the upsert leaves the messages to
    be picked up again. Re-indexing is harmless because records are keyed by
    message id and the last write wins.

    The embedding service must already produce vectors of the index
    dimension, and must be the same adapter the retrieval engine queries with.
    """

    def __init__(
        self,
        repository: MessageRepository,
        embeddings: EmbeddingService,
        index: SimilarityIndex,
        logger: BoundLogger,
        timeout: float | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            repository: Primary message store.
            embeddings: Embedding service adapted to the index dimension.
            index: Similarity index.
            logger: Logger instance.
            timeout: Default bound in seconds for the embedding and index steps.
        """
        self._repository = repository
        self._embeddings = embeddings
        self._index = index
        self._logger = logger
        self._timeout = timeout

    async def run_batch(self, min_threshold: int, timeout: float | None = None) -> int:
        """Vectorize all pending messages once enough of them have piled up.

        Never raises: failures are logged and reported as zero progress, and
        the messages are retried by the next run. A timeout fires before the
        flag update, so flags stay untouched.

        Args:
            min_threshold: Minimum number of unvectorized messages required.
            timeout: Bound in seconds for the embedding and index steps.
                Defaults to the pipeline timeout.

        Returns:
            The number of messages processed.
        """
        try:
            pending = await self._repository.count_unvectorized()
            if pending < min_threshold:
                self._logger.debug(
                    "Vectorization below threshold",
                    pending=pending,
                    min_threshold=min_threshold,
                )
                return 0

            messages = await self._repository.fetch_unvectorized()
            processed = await self._process(messages, timeout)
        except Exception as e:
            self._logger.error(
                "Vectorization batch failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            return 0

        self._logger.info("Vectorization batch completed", processed=processed)
        return processed

    async def vectorize_messages(
        self, messages: list[Message], timeout: float | None = None
    ) -> int:
        """Vectorize an explicit list of messages, regardless of threshold.

        Raises:
            Exception: Any embedding, index or persistence failure.
        """
        return await self._process(messages, timeout)

    async def vectorize_author(
        self, author_id: str, timeout: float | None = None
    ) -> int:
        """Vectorize every pending message of one author.

        Raises:
            Exception: Any embedding, index or persistence failure.
        """
        messages = await self._repository.fetch_unvectorized(author_id=author_id)
        return await self._process(messages, timeout)

    async def purge_embeddings(self, message_ids: list[str]) -> bool:
        """Delete index records of deleted messages, best effort.

        Returns:
            True if the delete went through.
        """
        if not message_ids:
            return True
        try:
            await self._index.delete(message_ids)
        except Exception as e:
            self._logger.warning(
                "Failed to purge embeddings",
                message_ids=message_ids,
                error=str(e),
            )
            return False
        self._logger.info("Purged embeddings", count=len(message_ids))
        return True

    async def _process(self, messages: list[Message], timeout: float | None) -> int:
        if not messages:
            return 0

        # Messages without text (attachment only) are marked without a record
        indexable = [m for m in messages if m.content.strip()]

        async with asyncio.timeout(timeout if timeout is not None else self._timeout):
            vectors = await self._embeddings.embed_many([m.content for m in indexable])
            if len(vectors) != len(indexable):
                raise PipelineError(
                    f"Embedding service returned {len(vectors)} vectors "
                    f"for {len(indexable)} messages"
                )
            records = [
                EmbeddingRecord.from_message(message, vector)
                for message, vector in zip(indexable, vectors)
            ]
            await self._index.upsert(records)

        await self._repository.mark_vectorized([m.id for m in messages])
        self._logger.debug(
            "Messages vectorized",
            indexed=len(records),
            skipped=len(messages) - len(records),
        )
        return len(messages)
