"""Filtered similarity retrieval of a user's past messages."""

import asyncio
from datetime import timezone

from structlog.stdlib import BoundLogger

from chatsync.domain.entities.embedding_record import QueryMatch, RetrievalFilters
from chatsync.domain.repositories.similarity_index import SimilarityIndex
from chatsync.domain.services.embedding_service import EmbeddingService

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M"


class SemanticRetrievalEngine:
    """Finds a user's messages closest to a prompt.

    Retrieval failures are never fatal: an empty result is a valid answer and
    only lowers the quality of downstream generation.
    """

    def __init__(
        self,
        embeddings: EmbeddingService,
        index: SimilarityIndex,
        logger: BoundLogger,
        timeout: float | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            embeddings: The same dimension-adapted service used for indexing.
            index: Similarity index.
            logger: Logger instance.
            timeout: Bound in seconds for the embedding and query calls.
        """
        self._embeddings = embeddings
        self._index = index
        self._logger = logger
        self._timeout = timeout

    async def retrieve_context(
        self, prompt_text: str, filters: RetrievalFilters, top_k: int = 5
    ) -> list[QueryMatch]:
        """Return the top_k indexed messages closest to a prompt.

        Args:
            prompt_text: Free text to match.
            filters: Exact-match metadata filters; all must hold.
            top_k: Maximum number of matches.

        Returns:
            Matches by descending score; empty on any failure.
        """
        try:
            async with asyncio.timeout(self._timeout):
                vector = await self._embeddings.embed(prompt_text)
                matches = await self._index.query(
                    vector, top_k, filter=filters.to_index_filter()
                )
        except Exception as e:
            self._logger.warning(
                "Retrieval failed, using empty context",
                author_id=filters.author_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return []

        matches = sorted(matches, key=lambda m: m.score, reverse=True)
        self._logger.debug(
            "Retrieved context",
            author_id=filters.author_id,
            matches=len(matches),
        )
        return matches

    @staticmethod
    def build_style_context(matches: list[QueryMatch]) -> str:
        """Render matches as few-shot samples, one per line, in given order.

        Each line reads ``<author> (<timestamp>): <content>``.
        """
        lines = []
        for match in matches:
            metadata = match.metadata
            author = metadata.author_name or metadata.author_id
            created_at = metadata.created_at
            if created_at.tzinfo is not None:
                created_at = created_at.astimezone(timezone.utc)
            timestamp = created_at.strftime(TIMESTAMP_FORMAT)
            lines.append(f"{author} ({timestamp}): {metadata.content}")
        return "\n".join(lines)

    async def get_style_context(
        self, prompt_text: str, filters: RetrievalFilters, top_k: int = 5
    ) -> str:
        """Retrieve matches and render them as style context."""
        matches = await self.retrieve_context(prompt_text, filters, top_k=top_k)
        return self.build_style_context(matches)
