"""Persistence adapters for EDUBot."""

from edubot.persistence.memory import InMemoryStore
from edubot.persistence.sqlite import SQLiteStore, serialize_config, serialize_selector

__all__ = [
    "InMemoryStore",
    "SQLiteStore",
    "serialize_config",
    "serialize_selector",
]
