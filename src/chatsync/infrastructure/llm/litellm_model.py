"""LLM model factory for reply generation."""

import os
from typing import Any

from strands.models.litellm import LiteLLMModel
from strands.models.ollama import OllamaModel

from chatsync.config.models import LLMConfig
from chatsync.infrastructure.llm.mock_model import MockModel

# Replies imitate a user's style, so sampling stays conservative by default
DEFAULT_PARAMS: dict[str, Any] = {"temperature": 0.3}

Model = LiteLLMModel | OllamaModel | MockModel


def create_model(config: LLMConfig) -> Model:
    """Create a model based on configuration and environment.

    Args:
        config: LLM configuration.

    Returns:
        MockModel if MOCK_LLM=true (raising if MOCK_LLM=error), OllamaModel
        if model_id starts with "ollama/", otherwise LiteLLMModel.
    """
    mock_llm = os.getenv("MOCK_LLM", "").lower()

    if mock_llm == "true":
        return MockModel()

    if mock_llm == "error":
        return MockModel(raise_error=True)

    params = {**DEFAULT_PARAMS, **config.params}

    if config.model_id.startswith("ollama/"):
        return OllamaModel(
            host=config.client_args.get("api_base"),
            model_id=config.model_id.removeprefix("ollama/"),
            **params,
        )

    return LiteLLMModel(
        model_id=config.model_id,
        params=params,
        client_args=config.client_args,
    )
