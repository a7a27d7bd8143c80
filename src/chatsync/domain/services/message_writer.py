"""MessageWriter protocol."""

from typing import Protocol

from chatsync.domain.entities.message import Message, MessageDraft


class MessageWriter(Protocol):
    """Outbound write path for new messages.

    The implementation persists the message and publishes the ``created``
    event that every subscriber, the sender included, receives.
    """

    async def post_message(self, draft: MessageDraft) -> Message:
        """Persist a draft and return the authoritative message."""
        ...
