"""Configuration module for chatsync."""

from chatsync.config.loader import (
    ConfigError,
    ConfigFileNotFoundError,
    ConfigParseError,
    EnvVarNotFoundError,
    load_config,
)
from chatsync.config.models import (
    AppConfig,
    BrokerConfig,
    DatabaseConfig,
    EmbeddingConfig,
    GenerationConfig,
    IndexConfig,
    LLMConfig,
    LoggingConfig,
    RetrievalConfig,
    ServerConfig,
    VectorizationConfig,
)

__all__ = [
    # Exceptions
    "ConfigError",
    "ConfigFileNotFoundError",
    "ConfigParseError",
    "EnvVarNotFoundError",
    # Functions
    "load_config",
    # Models
    "AppConfig",
    "BrokerConfig",
    "DatabaseConfig",
    "EmbeddingConfig",
    "GenerationConfig",
    "IndexConfig",
    "LLMConfig",
    "LoggingConfig",
    "RetrievalConfig",
    "ServerConfig",
    "VectorizationConfig",
]
