"""Adapting embedding vectors to the similarity index dimension."""

from chatsync.domain.errors import EmbeddingDimensionError
from chatsync.domain.services.embedding_service import EmbeddingService


def expand_vector(vector: list[float], target_dimension: int) -> list[float]:
    """Repeat a vector until it fills the target dimension.

    This is a structural fit for an index configured with a larger dimension
    than the model produces. Cosine similarity between two vectors expanded
    the same way equals the similarity of the originals.

    Args:
        vector: Native embedding.
        target_dimension: Index dimension, a whole multiple of len(vector).

    Returns:
        The expanded vector (the input itself when dimensions already match).

    Raises:
        EmbeddingDimensionError: If the target is not a whole multiple.
    """
    native = len(vector)
    if native == target_dimension:
        return vector
    if native == 0 or target_dimension < native or target_dimension % native:
        raise EmbeddingDimensionError(
            f"Cannot expand {native}-dimensional vector to {target_dimension}"
        )
    return vector * (target_dimension // native)


class DimensionAdaptingEmbeddingService:
    """Embedding service wrapper producing vectors of the index dimension.

    Indexing and querying must both go through the same wrapper so that
    stored and query vectors are comparable.
    """

    def __init__(self, inner: EmbeddingService, target_dimension: int) -> None:
        if target_dimension < inner.dimension or target_dimension % inner.dimension:
            raise EmbeddingDimensionError(
                f"Index dimension {target_dimension} is not a whole multiple "
                f"of embedding dimension {inner.dimension}"
            )
        self._inner = inner
        self._target_dimension = target_dimension

    @property
    def dimension(self) -> int:
        return self._target_dimension

    @property
    def inner(self) -> EmbeddingService:
        return self._inner

    async def embed(self, text: str) -> list[float]:
        return expand_vector(await self._inner.embed(text), self._target_dimension)

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        vectors = await self._inner.embed_many(texts)
        return [expand_vector(v, self._target_dimension) for v in vectors]
