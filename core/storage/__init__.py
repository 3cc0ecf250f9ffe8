"""
Platform Sync storage backends.

- KeyValueStore: the port every component persists through
- InMemoryKeyValueStore: dict-backed, TTL-aware
- SqlKeyValueStore: SQLAlchemy async backend
"""
from core.storage.kv_store import InMemoryKeyValueStore, KeyValueStore
from core.storage.sql_store import SqlKeyValueStore

__all__ = [
    "InMemoryKeyValueStore",
    "KeyValueStore",
    "SqlKeyValueStore",
]
