"""Domain entities."""

from chatsync.domain.entities.broker_event import (
    BrokerEvent,
    BrokerEventKind,
    MemberProfileChanged,
    MessageCreated,
    MessageDeleted,
    MessageUpdated,
    parse_broker_event,
)
from chatsync.domain.entities.embedding_record import (
    EmbeddingMetadata,
    EmbeddingRecord,
    QueryMatch,
    RetrievalFilters,
)
from chatsync.domain.entities.job import Job, JobType, PurgeEmbeddingsJob, VectorizeJob
from chatsync.domain.entities.message import (
    Attachment,
    AuthorProfile,
    ChannelLocator,
    ConversationLocator,
    DirectLocator,
    Message,
    MessageDraft,
    MessageKind,
    Reaction,
)
from chatsync.domain.entities.message_record import MessageRecord

__all__ = [
    "Attachment",
    "AuthorProfile",
    "BrokerEvent",
    "BrokerEventKind",
    "ChannelLocator",
    "ConversationLocator",
    "DirectLocator",
    "EmbeddingMetadata",
    "EmbeddingRecord",
    "Job",
    "JobType",
    "MemberProfileChanged",
    "Message",
    "MessageCreated",
    "MessageDeleted",
    "MessageDraft",
    "MessageKind",
    "MessageRecord",
    "MessageUpdated",
    "PurgeEmbeddingsJob",
    "QueryMatch",
    "Reaction",
    "RetrievalFilters",
    "VectorizeJob",
    "parse_broker_event",
]
