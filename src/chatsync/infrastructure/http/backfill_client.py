"""HTTP implementation of ConversationFetcher."""

from typing import Any
from urllib.parse import quote

import aiohttp
from pydantic import ValidationError
from structlog.stdlib import BoundLogger

from chatsync.domain.entities.message import (
    ChannelLocator,
    ConversationLocator,
    Message,
)
from chatsync.infrastructure.logging import get_logger


class HttpBackfillClient:
    """Reads conversation backfills from the chatsync HTTP service.

    Transport failures and error statuses surface as ConnectionError so the
    realtime sync controller treats them as retryable. Items that do not
    validate as messages are logged and skipped.

    Args:
        base_url: Service root, e.g. "http://localhost:8080".
        session: Shared client session.
        timeout: Total request timeout in seconds.
        logger: Structured logger, defaults to the module logger.
    """

    def __init__(
        self,
        base_url: str,
        session: aiohttp.ClientSession,
        timeout: float = 10.0,
        logger: BoundLogger | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._logger = logger or get_logger(__name__)

    async def fetch_conversation_messages(
        self, locator: ConversationLocator
    ) -> list[Message]:
        if isinstance(locator, ChannelLocator):
            path = f"/api/v1/channels/{quote(locator.channel_id, safe='')}/messages"
        else:
            user_a, user_b = (quote(p, safe="") for p in locator.participant_ids)
            path = f"/api/v1/direct/{user_a}/{user_b}/messages"
        return await self._get_messages(path)

    async def fetch_thread_replies(self, parent_id: str) -> list[Message]:
        return await self._get_messages(
            f"/api/v1/messages/{quote(parent_id, safe='')}/replies"
        )

    async def _get_messages(self, path: str) -> list[Message]:
        try:
            async with self._session.get(
                self._base_url + path, timeout=self._timeout
            ) as response:
                response.raise_for_status()
                body: dict[str, Any] = await response.json()
        except aiohttp.ClientError as e:
            raise ConnectionError(f"Backfill request failed: {path}: {e}") from e
        messages = []
        for item in body.get("messages", []):
            try:
                messages.append(Message.model_validate(item))
            except ValidationError as e:
                self._logger.warning(
                    "Skipping invalid backfill item",
                    path=path,
                    error_count=e.error_count(),
                    error=str(e),
                )
        return messages
