"""EmbeddingService protocol."""

from typing import Protocol


class EmbeddingService(Protocol):
    """Text embedding capability with a fixed output dimension."""

    @property
    def dimension(self) -> int:
        """Return the dimension of produced vectors."""
        ...

    async def embed(self, text: str) -> list[float]:
        """Embed a single text."""
        ...

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts, one vector per text, in input order."""
        ...
