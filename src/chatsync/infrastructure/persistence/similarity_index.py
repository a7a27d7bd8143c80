"""SQLite implementation of SimilarityIndex."""

from datetime import datetime, timezone
from typing import Any

import numpy as np
from sqlalchemy import Column, LargeBinary, delete, func
from sqlalchemy.types import JSON
from sqlmodel import Field, SQLModel, col, select

from chatsync.domain.entities.embedding_record import (
    EmbeddingMetadata,
    EmbeddingRecord,
    QueryMatch,
)
from chatsync.domain.errors import EmbeddingDimensionError
from chatsync.infrastructure.persistence.database import Database

# Metadata fields stored as indexed columns and filtered in SQL
FILTER_COLUMNS = ("author_id", "channel_id", "workspace_id")


class EmbeddingRow(SQLModel, table=True):
    """Persisted embedding record.

    Attributes:
        id: Source message id.
        embedding: Vector as a float32 blob.
        author_id: Mirrored author id, filterable.
        channel_id: Mirrored channel id, filterable.
        workspace_id: Mirrored workspace id, filterable.
        payload: Full metadata mirror as JSON.
        indexed_at: Time of the last write.
    """

    __tablename__ = "embeddings"

    id: str = Field(primary_key=True)
    embedding: bytes = Field(sa_column=Column(LargeBinary, nullable=False))
    author_id: str = Field(index=True)
    channel_id: str | None = Field(default=None, index=True)
    workspace_id: str | None = Field(default=None, index=True)
    payload: dict[str, Any] = Field(sa_column=Column(JSON))
    indexed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Return the cosine similarity of two vectors (0.0 for zero vectors)."""
    va = np.asarray(a, dtype=np.float32)
    vb = np.asarray(b, dtype=np.float32)
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0:
        return 0.0
    return float(va @ vb) / norm


def to_blob(vector: list[float]) -> bytes:
    return np.asarray(vector, dtype=np.float32).tobytes()


def score_rows(query: np.ndarray, embeddings: np.ndarray) -> np.ndarray:
    """Return the cosine similarity of ``query`` against each row.

    Zero vectors on either side score 0.0.
    """
    norms = np.linalg.norm(embeddings, axis=1) * np.linalg.norm(query)
    dots = embeddings @ query
    return np.divide(
        dots, norms, out=np.zeros_like(dots, dtype=np.float32), where=norms > 0
    )


class SqliteSimilarityIndex:
    """Brute-force cosine similarity index stored in SQLite.

    Filters on author, channel and workspace run in SQL; the remaining rows
    are scored together with one matrix-vector product.
    """

    def __init__(self, database: Database, dimension: int) -> None:
        """Initialize the index.

        Args:
            database: Database holding the embeddings table.
            dimension: Dimension every stored and query vector must have.
        """
        self._database = database
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def _check_dimension(self, vector: list[float]) -> None:
        if len(vector) != self._dimension:
            raise EmbeddingDimensionError(
                f"Vector has {len(vector)} dimensions, index expects {self._dimension}"
            )

    async def upsert(self, records: list[EmbeddingRecord]) -> None:
        """Insert or overwrite records in one transaction (last write wins)."""
        if not records:
            return
        for record in records:
            self._check_dimension(record.vector)

        async with self._database.get_session() as session:
            for record in records:
                metadata = record.metadata
                await session.merge(
                    EmbeddingRow(
                        id=record.id,
                        embedding=to_blob(record.vector),
                        author_id=metadata.author_id,
                        channel_id=metadata.channel_id,
                        workspace_id=metadata.workspace_id,
                        payload=metadata.model_dump(mode="json"),
                        indexed_at=datetime.now(timezone.utc),
                    )
                )

    async def query(
        self, vector: list[float], top_k: int, filter: dict[str, Any] | None = None
    ) -> list[QueryMatch]:
        """Return the top_k nearest records matching every filter entry.

        Returns:
            Matches ordered by descending score, ties broken by id.
        """
        self._check_dimension(vector)
        filter = filter or {}

        statement = select(EmbeddingRow)
        for key in FILTER_COLUMNS:
            if key in filter:
                statement = statement.where(getattr(EmbeddingRow, key) == filter[key])
        extra = {k: v for k, v in filter.items() if k not in FILTER_COLUMNS}

        async with self._database.get_session() as session:
            result = await session.execute(statement)
            rows = [
                row
                for row in result.scalars().all()
                if all(row.payload.get(k) == v for k, v in extra.items())
            ]

        if not rows or top_k <= 0:
            return []

        embeddings = np.array(
            [np.frombuffer(row.embedding, dtype=np.float32) for row in rows]
        )
        scores = score_rows(np.asarray(vector, dtype=np.float32), embeddings)
        # lexsort uses the last key as primary: descending score, then id
        order = np.lexsort((np.array([row.id for row in rows]), -scores))[:top_k]

        return [
            QueryMatch(
                id=rows[i].id,
                score=float(scores[i]),
                metadata=EmbeddingMetadata(**rows[i].payload),
            )
            for i in order
        ]

    async def delete(self, ids: list[str]) -> None:
        """Delete records by id. Unknown ids are ignored."""
        if not ids:
            return
        async with self._database.get_session() as session:
            await session.execute(
                delete(EmbeddingRow).where(col(EmbeddingRow.id).in_(ids))
            )

    async def count(self) -> int:
        """Return the number of stored records."""
        async with self._database.get_session() as session:
            result = await session.execute(
                select(func.count()).select_from(EmbeddingRow)
            )
            return result.scalar() or 0
