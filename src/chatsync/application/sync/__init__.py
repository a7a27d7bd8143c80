"""Client-side message synchronization."""

from chatsync.application.sync.message_store import (
    MessageStore,
    MessageView,
    UpsertOutcome,
)
from chatsync.application.sync.realtime_sync import (
    RealtimeSyncController,
    SubscriptionState,
)

__all__ = [
    "MessageStore",
    "MessageView",
    "RealtimeSyncController",
    "SubscriptionState",
    "UpsertOutcome",
]
