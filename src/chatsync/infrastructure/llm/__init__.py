"""LLM infrastructure."""

from chatsync.infrastructure.llm.litellm_model import Model, create_model
from chatsync.infrastructure.llm.mock_model import MockModel

__all__ = ["MockModel", "Model", "create_model"]
