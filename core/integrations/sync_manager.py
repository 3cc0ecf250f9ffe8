"""
Platform Sync cursor tracking.

``sync:{platform}`` holds the last successful sync instant, the item ids
seen during it, and a running total of facts produced.
"""
from __future__ import annotations
from typing import Any

import structlog

from core.integrations.models import SyncInfo, utc_now
from core.integrations.platform_registry import PlatformRegistry
from core.integrations.token_manager import TokenManager
from core.storage.kv_store import KeyValueStore

logger = structlog.get_logger(__name__)


def sync_key(platform: str) -> str:
    return f"sync:{platform}"


class SyncManager:
    """Per-platform incremental-sync cursors and status."""

    def __init__(self, store: KeyValueStore, registry: PlatformRegistry):
        self.store = store
        self.registry = registry

    async def get_last_sync(self, platform: str) -> SyncInfo | None:
        data = await self.store.get(sync_key(platform))
        return SyncInfo.from_dict(data) if data else None

    async def record_sync(self, platform: str, seen_item_ids: list[str] | None) -> SyncInfo:
        """Overwrite the cursor with now + the given ids. The fact total carries over."""
        previous = await self.get_last_sync(platform)
        info = SyncInfo(
            platform=platform,
            last_sync_at=utc_now(),
            last_item_ids=list(seen_item_ids) if seen_item_ids is not None else None,
            total_facts=previous.total_facts if previous else 0,
        )
        await self.store.set(sync_key(platform), info.to_dict())
        logger.info("Sync cursor updated", platform=platform, seen_ids=len(seen_item_ids or []))
        return info

    async def add_facts(self, platform: str, count: int) -> None:
        """Add to the running fact total once extraction has been persisted."""
        info = await self.get_last_sync(platform)
        if info is None:
            return
        info.total_facts += count
        await self.store.set(sync_key(platform), info.to_dict())

    async def get_status(
        self,
        tokens: TokenManager,
        platform: str | None = None,
    ) -> list[dict[str, Any]]:
        """Connected flag + last-sync summary, for one platform or all registered ones."""
        platforms = [platform] if platform else sorted(self.registry.list_platforms())
        statuses = []
        for name in platforms:
            info = await self.get_last_sync(name)
            statuses.append({
                "platform": name,
                "connected": await tokens.is_connected(name),
                "last_sync": {
                    "date": info.last_sync_at.isoformat(),
                    "facts": info.total_facts,
                } if info else None,
            })
        return statuses

    async def reset(self, platform: str | None = None) -> None:
        platforms = [platform] if platform else sorted(self.registry.list_platforms())
        for name in platforms:
            await self.store.delete(sync_key(name))
        logger.info("Sync info reset", platforms=platforms)
