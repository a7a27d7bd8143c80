"""Application services."""

from chatsync.application.services.job_runner import JobRunner
from chatsync.application.services.reply_generator import (
    GeneratedReply,
    ReplyGenerator,
)
from chatsync.application.services.semantic_retrieval import SemanticRetrievalEngine
from chatsync.application.services.vectorization_pipeline import (
    VectorizationPipeline,
)

__all__ = [
    "GeneratedReply",
    "JobRunner",
    "ReplyGenerator",
    "SemanticRetrievalEngine",
    "VectorizationPipeline",
]
