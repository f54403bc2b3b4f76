"""chatsync: conversation, group and message synchronization backend plus async client."""

__version__ = "0.1.0"
