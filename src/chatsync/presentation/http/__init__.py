"""HTTP presentation layer."""

from chatsync.presentation.http.broker_hub import BrokerHub
from chatsync.presentation.http.server import HTTPServer

__all__ = ["BrokerHub", "HTTPServer"]
