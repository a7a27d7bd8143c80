"""chatsync - realtime chat sync with style-matched semantic retrieval."""

__version__ = "0.1.0"
