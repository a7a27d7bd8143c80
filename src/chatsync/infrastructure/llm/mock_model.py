"""Mock LLM model for testing."""

from typing import Any, AsyncGenerator, AsyncIterable, TypeVar

from strands.models import Model
from strands.types.content import Messages
from strands.types.streaming import StreamEvent

T = TypeVar("T")

MOCK_REPLY = "Mock reply"


class MockModel(Model):
    """Model answering with a fixed reply, without any API call.

    The last system prompt is kept so tests can check what the model saw.
    """

    def __init__(self, raise_error: bool = False, reply: str = MOCK_REPLY) -> None:
        """Initialize the mock model.

        Args:
            raise_error: If True, raise an error on stream.
            reply: Text streamed back for every request.
        """
        self._raise_error = raise_error
        self._reply = reply
        self._config: dict[str, Any] = {}
        self.last_system_prompt: str | None = None

    async def stream(
        self,
        messages: Messages,
        tool_specs: list[Any] | None = None,
        system_prompt: str | None = None,
        **kwargs: Any,
    ) -> AsyncIterable[StreamEvent]:
        """Stream the fixed reply.

        Raises:
            RuntimeError: If raise_error is True.
        """
        self.last_system_prompt = system_prompt
        if self._raise_error:
            raise RuntimeError("Mock LLM error for testing")

        yield {
            "contentBlockStart": {
                "contentBlockIndex": 0,
                "start": {"text": ""},
            }
        }
        yield {
            "contentBlockDelta": {
                "delta": {"text": self._reply},
                "contentBlockIndex": 0,
            }
        }
        yield {"contentBlockStop": {"contentBlockIndex": 0}}
        yield {"messageStop": {"stopReason": "end_turn"}}

    async def structured_output(
        self,
        output_model: type[T],
        prompt: Messages,
        **kwargs: Any,
    ) -> AsyncGenerator[dict[str, T | Any], None]:
        """Structured output is not supported by the mock."""
        yield {}
        return

    def update_config(self, **model_config: Any) -> None:
        self._config.update(model_config)

    def get_config(self) -> dict[str, Any]:
        return self._config
