"""
Platform Sync Key-Value Store port.

Credentials, sync cursors, pending authorization states and facts all live
in one key-value store. Every write is a single upsert of a JSON-compatible
value, so no backend needs multi-key transactions.

Keys:
- ``token:{platform}``
- ``sync:{platform}``
- ``pending:{state}`` (short TTL)
- ``fact:{dedup_key}`` and ``facts:{platform}:{record_id}``
"""
from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol, runtime_checkable
import copy


@runtime_checkable
class KeyValueStore(Protocol):
    """Async get/set/delete by key."""

    async def get(self, key: str) -> Any | None: ...

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def keys(self, prefix: str = "") -> list[str]: ...


@dataclass
class _Entry:
    value: Any
    expires_at: datetime | None = None

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return datetime.now(timezone.utc) >= self.expires_at


class InMemoryKeyValueStore:
    """Dict-backed store with per-key TTL. Used in tests and local runs."""

    def __init__(self):
        self._entries: dict[str, _Entry] = {}

    async def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_expired:
            del self._entries[key]
            return None
        return copy.deepcopy(entry.value)

    async def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        expires_at = None
        if ttl_seconds is not None:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
        self._entries[key] = _Entry(value=copy.deepcopy(value), expires_at=expires_at)

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def keys(self, prefix: str = "") -> list[str]:
        expired = [k for k, v in self._entries.items() if v.is_expired]
        for k in expired:
            del self._entries[k]
        return sorted(k for k in self._entries if k.startswith(prefix))
