"""In-memory reconciling message cache."""

from collections.abc import Callable, Iterable, Iterator
from enum import Enum
from typing import Any

from chatsync.domain.entities.message import (
    PROVISIONAL_ID_PREFIX,
    AuthorProfile,
    ChannelLocator,
    ConversationLocator,
    Message,
    toggle_reaction,
)
from chatsync.domain.errors import InvalidMessageError

# Never overwritten by an empty incoming value
DISPLAY_FIELDS = ("author_name", "author_image")


class UpsertOutcome(str, Enum):
    """Result of a MessageStore.upsert call."""

    INSERTED = "inserted"
    MERGED = "merged"
    UNCHANGED = "unchanged"


class MessageView:
    """Lazy, restartable view over a selection of held messages.

    Every iteration re-reads the store, so a view taken before a mutation
    reflects it on the next pass.
    """

    def __init__(self, select: Callable[[], list[Message]]) -> None:
        self._select = select

    def __iter__(self) -> Iterator[Message]:
        return iter(self._select())

    def __len__(self) -> int:
        return len(self._select())

    def ids(self) -> list[str]:
        """Return the ids of the view, in order."""
        return [m.id for m in self]


class MessageStore:
    """Client-visible message graph keyed by message id.

    All mutations go through the merge operations below; entries are never
    assigned field by field from outside. Operations are synchronous.
    """

    def __init__(self) -> None:
        """Initialize an empty store."""
        self._messages: dict[str, Message] = {}
        self._profiles: dict[str, AuthorProfile] = {}
        self._complete_threads: set[str] = set()

    def __len__(self) -> int:
        return len(self._messages)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._messages

    def get(self, message_id: str) -> Message | None:
        """Return a held message by id."""
        return self._messages.get(message_id)

    def upsert(self, message: Message) -> UpsertOutcome:
        """Insert a message or merge it into the held copy.

        Only fields the incoming snapshot actually carries are merged.
        Display fields are never replaced by empty values, the vectorized
        flag never goes back to False, and any out-of-band author profile is
        re-applied afterwards.

        Args:
            message: Incoming snapshot.

        Returns:
            Whether the message was inserted, changed or left untouched.

        Raises:
            InvalidMessageError: If the message has no id.
        """
        if not message.id:
            raise InvalidMessageError("Cannot upsert a message without an id")

        existing = self._messages.get(message.id)
        if existing is None:
            self._messages[message.id] = self._apply_profile(message)
            if message.parent_id in self._complete_threads:
                self.recompute_reply_count(message.parent_id)
            return UpsertOutcome.INSERTED

        merged = self._apply_profile(self._merge(existing, message))
        if merged == existing:
            return UpsertOutcome.UNCHANGED
        self._messages[message.id] = merged
        parent_id = merged.parent_id
        if parent_id is not None and parent_id in self._complete_threads:
            self.recompute_reply_count(parent_id)
        return UpsertOutcome.MERGED

    def _merge(self, existing: Message, incoming: Message) -> Message:
        update: dict[str, Any] = {}
        for name in incoming.model_fields_set:
            value = getattr(incoming, name)
            if name in DISPLAY_FIELDS and not value:
                continue
            update[name] = value
        update["is_vectorized"] = existing.is_vectorized or incoming.is_vectorized
        if incoming.id in self._complete_threads:
            # cached count is owned by the held reply set
            update.pop("reply_count", None)
        return existing.model_copy(update=update)

    def _apply_profile(self, message: Message) -> Message:
        profile = self._profiles.get(message.author_id)
        if profile is None:
            return message
        return self._patch_author(message, profile)

    @staticmethod
    def _patch_author(message: Message, profile: AuthorProfile) -> Message:
        update: dict[str, str] = {}
        if profile.display_name and profile.display_name != message.author_name:
            update["author_name"] = profile.display_name
        if profile.avatar_url and profile.avatar_url != message.author_image:
            update["author_image"] = profile.avatar_url
        if not update:
            return message
        return message.model_copy(update=update)

    def remove(self, message_id: str) -> Message | None:
        """Remove a message.

        An unknown id is a no-op: deletions may arrive for messages that were
        never loaded or were already removed. Removing a thread parent also
        drops its held replies.

        Returns:
            The removed message, or None.
        """
        removed = self._messages.pop(message_id, None)
        if removed is None:
            return None
        if removed.parent_id is not None:
            self.recompute_reply_count(removed.parent_id, delta=-1)
        for reply in self._replies_of(message_id):
            del self._messages[reply.id]
        self._complete_threads.discard(message_id)
        return removed

    def enrich_by_author(self, author_id: str, profile: AuthorProfile) -> int:
        """Apply an author profile to every held message of that author.

        The profile is remembered and re-applied to snapshots that arrive
        later, so stale display data heals without a refetch.

        Args:
            author_id: The author whose messages are patched.
            profile: New display data; empty fields are ignored.

        Returns:
            The number of messages that changed.
        """
        previous = self._profiles.get(author_id, AuthorProfile())
        self._profiles[author_id] = AuthorProfile(
            display_name=profile.display_name or previous.display_name,
            avatar_url=profile.avatar_url or previous.avatar_url,
        )

        changed = 0
        for message_id, message in list(self._messages.items()):
            if message.author_id != author_id:
                continue
            patched = self._patch_author(message, profile)
            if patched is not message:
                self._messages[message_id] = patched
                changed += 1
        return changed

    def view_conversation(self, locator: ConversationLocator) -> MessageView:
        """Return the top-level messages of a conversation.

        Thread replies are excluded. Ordered by (created_at, id).
        """

        def select() -> list[Message]:
            if isinstance(locator, ChannelLocator):
                selected = (
                    m
                    for m in self._messages.values()
                    if m.channel_id == locator.channel_id and not m.is_thread_reply
                )
            else:
                selected = (
                    m
                    for m in self._messages.values()
                    if m.participant_ids == locator.participant_ids
                )
            return sorted(selected, key=Message.sort_key)

        return MessageView(select)

    def view_thread(self, parent_id: str) -> MessageView:
        """Return a thread: the parent first, then replies by (created_at, id)."""

        def select() -> list[Message]:
            parent = self._messages.get(parent_id)
            if parent is None:
                return []
            return [parent, *self._replies_of(parent_id)]

        return MessageView(select)

    def _replies_of(self, parent_id: str) -> list[Message]:
        return sorted(
            (m for m in self._messages.values() if m.parent_id == parent_id),
            key=Message.sort_key,
        )

    def load_thread(self, parent_id: str, replies: Iterable[Message]) -> None:
        """Merge a backfilled reply set and mark the thread complete.

        From then on the parent's reply count is the held reply cardinality.
        """
        for reply in replies:
            self.upsert(reply)
        self._complete_threads.add(parent_id)
        self.recompute_reply_count(parent_id)

    def recompute_reply_count(self, parent_id: str, delta: int = 0) -> int | None:
        """Reconcile the cached reply count of a thread parent.

        Complete threads use the number of held replies. Otherwise the cached
        count is shifted by ``delta`` and kept at or above the number of held
        replies.

        Returns:
            The new count, or None when the parent is not held.
        """
        parent = self._messages.get(parent_id)
        if parent is None:
            return None
        held = len(self._replies_of(parent_id))
        if parent_id in self._complete_threads:
            count = held
        else:
            count = max(parent.reply_count + delta, held, 0)
        if count != parent.reply_count:
            self._messages[parent_id] = parent.model_copy(update={"reply_count": count})
        return count

    def toggle_reaction(
        self, message_id: str, user_id: str, emoji: str, user_name: str | None = None
    ) -> Message | None:
        """Toggle a (user, emoji) reaction on a held message.

        Returns:
            The updated message, or None if the message is not held.
        """
        message = self._messages.get(message_id)
        if message is None:
            return None
        updated = message.model_copy(
            update={
                "reactions": toggle_reaction(
                    message.reactions, user_id, emoji, user_name=user_name
                )
            }
        )
        self._messages[message_id] = updated
        return updated

    def add_provisional(self, message: Message) -> None:
        """Show a locally created message before the server acknowledges it.

        Raises:
            InvalidMessageError: If the id is not a provisional id.
        """
        if not message.is_provisional:
            raise InvalidMessageError(
                f"Provisional entries need a provisional id, got {message.id!r}"
            )
        self._messages[message.id] = message
        if message.parent_id is not None:
            self.recompute_reply_count(message.parent_id, delta=1)

    def confirm(self, provisional_id: str, message: Message) -> UpsertOutcome:
        """Replace a provisional entry with the authoritative message.

        The provisional entry is dropped, never merged into the real one.
        If the broker already delivered the real message this only re-applies
        an idempotent upsert.
        """
        provisional = self._messages.pop(provisional_id, None)
        outcome = self.upsert(message)
        if (
            provisional is not None
            and provisional.parent_id is not None
            and outcome is not UpsertOutcome.INSERTED
        ):
            # the provisional reply was already counted once
            self.recompute_reply_count(provisional.parent_id, delta=-1)
        return outcome

    def discard_provisional(self, provisional_id: str) -> None:
        """Drop a provisional entry whose write failed."""
        if provisional_id.startswith(PROVISIONAL_ID_PREFIX):
            self.remove(provisional_id)
