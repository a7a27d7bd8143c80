"""Tracing infrastructure module."""

from chatsync.infrastructure.tracing.setup import setup_tracing

__all__ = ["setup_tracing"]
