"""
Platform Sync Dedup Ledger — persist each fact at most once.

Keys are deterministic: the same operation + parameters always produce the
same key, so a fact derived from the same source item by the same rule maps
to the same marker across syncs.
"""
from __future__ import annotations
from typing import Any, Iterable
import hashlib
import json

from core.storage.kv_store import KeyValueStore


def generate_idempotency_key(operation: str, **kwargs: Any) -> str:
    """
    Generate a deterministic key from operation + params.
    Same inputs always produce the same key.
    """
    data = json.dumps({"op": operation, **kwargs}, sort_keys=True, default=str)
    return hashlib.sha256(data.encode()).hexdigest()[:32]


class DedupLedger:
    """Marker per dedup key in the key-value store (``fact:{key}``)."""

    PREFIX = "fact:"

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def seen(self, key: str) -> bool:
        return await self.store.get(f"{self.PREFIX}{key}") is not None

    async def unseen(self, keys: Iterable[str]) -> set[str]:
        """Subset of ``keys`` never marked before."""
        return {k for k in set(keys) if not await self.seen(k)}

    async def mark(self, keys: Iterable[str], record_id: str) -> None:
        for key in keys:
            await self.store.set(f"{self.PREFIX}{key}", {"record_id": record_id})
