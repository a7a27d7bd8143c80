"""Pydantic models for application configuration."""

from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class DatabaseConfig(BaseModel):
    """Database connection configuration."""

    url: str = Field(
        default="sqlite+aiosqlite:///./data/chatsync.db",
        description=(
            "SQLAlchemy-style database connection URL "
            "(e.g., 'sqlite+aiosqlite:///path/to/db')."
        ),
    )


class EmbeddingConfig(BaseModel):
    """Embedding service configuration for LiteLLM."""

    model_id: str = "text-embedding-ada-002"
    native_dimension: int = Field(
        default=1536,
        gt=0,
        description="Dimension of the vectors returned by the embedding model.",
    )
    index_dimension: int | None = Field(
        default=None,
        gt=0,
        description=(
            "Dimension of the similarity index. Defaults to native_dimension. "
            "A larger value must be a whole multiple of native_dimension; "
            "vectors are then repeated to fill it."
        ),
    )
    timeout: float = Field(
        default=30.0,
        gt=0,
        description="Timeout in seconds for one embedding request.",
    )
    params: dict[str, Any] = Field(default_factory=dict)
    client_args: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_index_dimension(self) -> "EmbeddingConfig":
        if self.index_dimension is None:
            return self
        if (
            self.index_dimension < self.native_dimension
            or self.index_dimension % self.native_dimension
        ):
            raise ValueError(
                "index_dimension must be a whole multiple of native_dimension"
            )
        return self

    @property
    def target_dimension(self) -> int:
        """Return the dimension vectors are adapted to."""
        return self.index_dimension or self.native_dimension


class IndexConfig(BaseModel):
    """Similarity index configuration."""

    url: str | None = Field(
        default=None,
        description=(
            "Connection URL of the index store. Defaults to the database URL."
        ),
    )


class VectorizationConfig(BaseModel):
    """Batch vectorization configuration."""

    min_threshold: int = Field(
        default=20,
        ge=1,
        description="Minimum number of unvectorized messages before a batch runs.",
    )
    run_on_startup: bool = Field(
        default=True,
        description="Enqueue one vectorization job when the service starts.",
    )
    interval_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Enqueue a vectorization job periodically when set.",
    )
    timeout: float = Field(
        default=120.0,
        gt=0,
        description="Timeout in seconds for the embedding and index steps.",
    )


class RetrievalConfig(BaseModel):
    """Semantic retrieval configuration."""

    top_k: int = Field(default=5, ge=1, le=100)
    timeout: float = Field(default=15.0, gt=0)


class BrokerConfig(BaseModel):
    """Broker client configuration."""

    url: str = "ws://localhost:8080/ws"
    reconnect_delay: float = Field(default=1.0, gt=0)
    max_reconnect_delay: float = Field(default=30.0, gt=0)
    heartbeat: float = Field(default=30.0, gt=0)


class LLMConfig(BaseModel):
    """LLM configuration for LiteLLM."""

    model_id: str
    params: dict[str, Any] = Field(default_factory=dict)
    client_args: dict[str, Any] = Field(default_factory=dict)


class GenerationConfig(BaseModel):
    """Style-matched reply generation configuration.

    ``system_prompt`` is a Jinja2 template rendered with ``context``, the
    retrieved samples of the user's writing.
    """

    system_prompt: str
    llm: LLMConfig


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = "INFO"
    format: Literal["json", "text"] = "json"
    loggers: dict[str, LogLevel] = Field(
        default_factory=dict,
        description="Per-logger level overrides, e.g. {'LiteLLM': 'WARNING'}.",
    )


class AppConfig(BaseModel):
    """Application configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    index: IndexConfig = Field(default_factory=IndexConfig)
    vectorization: VectorizationConfig = Field(default_factory=VectorizationConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    broker: BrokerConfig = Field(default_factory=BrokerConfig)
    generation: GenerationConfig | None = None

    @property
    def index_url(self) -> str:
        """Return the index store URL, falling back to the database URL."""
        return self.index.url or self.database.url
