"""Style-matched reply generation."""

from dataclasses import dataclass
from typing import Any

from jinja2 import Template
from strands import Agent
from structlog.stdlib import BoundLogger

from chatsync.application.services.semantic_retrieval import SemanticRetrievalEngine
from chatsync.config.models import GenerationConfig
from chatsync.domain.entities.embedding_record import RetrievalFilters
from chatsync.infrastructure.llm.litellm_model import create_model


@dataclass(frozen=True)
class GeneratedReply:
    """A generated reply and the style context it was conditioned on."""

    text: str
    context: str


class ReplyGenerator:
    """Generates a reply on behalf of a user, in that user's writing style.

    Each call is a one-shot invocation with a fresh Agent instance; replies
    do not share conversation history.
    """

    def __init__(
        self,
        config: GenerationConfig,
        retrieval: SemanticRetrievalEngine,
        logger: BoundLogger,
        top_k: int = 5,
    ) -> None:
        """Initialize the generator.

        Args:
            config: Generation configuration. ``system_prompt`` is a Jinja2
                template receiving ``context``.
            retrieval: Engine supplying the user's past messages.
            logger: Logger instance.
            top_k: Number of past messages used as style samples.
        """
        self._config = config
        self._retrieval = retrieval
        self._logger = logger
        self._top_k = top_k
        self._system_prompt_template = Template(config.system_prompt)

    async def generate(self, prompt: str, filters: RetrievalFilters) -> GeneratedReply:
        """Generate a reply to a prompt.

        Args:
            prompt: The message to answer.
            filters: Whose style to imitate and where to look for samples.

        Returns:
            The reply text and the style context used.

        Raises:
            Exception: If LLM invocation fails.
        """
        context = await self._retrieval.get_style_context(
            prompt, filters, top_k=self._top_k
        )
        system_prompt = self._system_prompt_template.render(context=context)
        self._logger.debug(
            "Built system prompt",
            author_id=filters.author_id,
            context_lines=len(context.splitlines()),
        )

        try:
            agent = Agent(
                model=create_model(self._config.llm),
                system_prompt=system_prompt,
                tools=[],
            )
            result = await agent.invoke_async(prompt)
        except Exception as e:
            self._logger.error(
                "Reply generation failed",
                author_id=filters.author_id,
                error=str(e),
                exc_info=True,
            )
            raise

        text = self._extract_response_text(result) or ""
        self._logger.info(
            "Reply generated",
            author_id=filters.author_id,
            response_length=len(text),
        )
        return GeneratedReply(text=text, context=context)

    def _extract_response_text(self, result: Any) -> str | None:
        """Extract text from agent result.

        Args:
            result: The agent result object.

        Returns:
            The extracted text or None.
        """
        if result is None:
            return None

        if hasattr(result, "message"):
            message: dict[str, Any] = result.message
            if isinstance(message, dict) and "content" in message:
                content: list[dict[str, Any]] = message["content"]
                if isinstance(content, list) and len(content) > 0:
                    first_block = content[0]
                    if isinstance(first_block, dict) and "text" in first_block:
                        text: str = first_block["text"]
                        return text

        return str(result)
