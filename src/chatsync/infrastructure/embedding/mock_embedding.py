"""Deterministic embedding service for testing."""

import hashlib
import math


class MockEmbeddingService:
    """Embedding service that hashes text into a unit vector.

    Equal texts always get equal vectors; no network calls are made.
    """

    def __init__(self, dimension: int = 8, raise_error: bool = False) -> None:
        """Initialize the mock service.

        Args:
            dimension: Dimension of produced vectors.
            raise_error: If True, every call raises.
        """
        self._dimension = dimension
        self._raise_error = raise_error
        self.calls: list[list[str]] = []

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed(self, text: str) -> list[float]:
        vectors = await self.embed_many([text])
        return vectors[0]

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Return one hashed vector per text.

        Raises:
            RuntimeError: If raise_error is True.
        """
        self.calls.append(list(texts))
        if self._raise_error:
            raise RuntimeError("Mock embedding error for testing")
        return [self._vector(text) for text in texts]

    def _vector(self, text: str) -> list[float]:
        values: list[float] = []
        counter = 0
        while len(values) < self._dimension:
            digest = hashlib.sha256(f"{counter}:{text}".encode()).digest()
            values.extend((byte / 127.5) - 1.0 for byte in digest)
            counter += 1
        values = values[: self._dimension]
        norm = math.sqrt(sum(v * v for v in values)) or 1.0
        return [v / norm for v in values]
