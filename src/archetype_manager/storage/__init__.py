"""Storage module for Archetype Manager persistence.

Provides:
- SQLite-based override records and scoped tags (persistent)
- In-memory implementations of every engine port
"""

from archetype_manager.storage.database import (
    Database,
    SqliteOverrideStore,
    SqliteTagStore,
    get_database,
    reset_database,
)
from archetype_manager.storage.memory import (
    InMemoryOverrideStore,
    InMemoryProgressionSource,
    InMemoryTagStore,
    RecordingNotificationSink,
)

__all__ = [
    "Database",
    "SqliteOverrideStore",
    "SqliteTagStore",
    "get_database",
    "reset_database",
    "InMemoryOverrideStore",
    "InMemoryProgressionSource",
    "InMemoryTagStore",
    "RecordingNotificationSink",
]
