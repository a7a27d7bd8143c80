"""SimilarityIndex protocol."""

from typing import Any, Protocol

from chatsync.domain.entities.embedding_record import EmbeddingRecord, QueryMatch


class SimilarityIndex(Protocol):
    """Vector index keyed by message id."""

    @property
    def dimension(self) -> int:
        """Return the configured vector dimension."""
        ...

    async def upsert(self, records: list[EmbeddingRecord]) -> None:
        """Insert or overwrite records in one batch (last write wins)."""
        ...

    async def query(
        self, vector: list[float], top_k: int, filter: dict[str, Any] | None = None
    ) -> list[QueryMatch]:
        """Return the top_k nearest records satisfying every filter entry.

        Args:
            vector: Query vector of the index dimension.
            top_k: Maximum number of matches.
            filter: Exact-match conditions on metadata fields.

        Returns:
            Matches ordered by descending similarity score.
        """
        ...

    async def delete(self, ids: list[str]) -> None:
        """Delete records by id. Unknown ids are ignored."""
        ...
