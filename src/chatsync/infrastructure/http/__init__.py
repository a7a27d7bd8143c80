"""HTTP client infrastructure."""

from chatsync.infrastructure.http.backfill_client import HttpBackfillClient

__all__ = ["HttpBackfillClient"]
