"""
Platform Sync Orchestrator — the façade the UI boundary talks to.

Wires the components together, turns a successful authorization into an
immediate sync, and keeps at most one sync per platform in flight.
"""
from __future__ import annotations
from typing import Any

import structlog

from core.config import EngineSettings
from core.errors import OperationInProgress
from core.integrations.data_fetcher import PlatformDataFetcher
from core.integrations.http_client import HttpClient
from core.integrations.models import AuthResult, SyncResult
from core.integrations.notifications import Notifier
from core.integrations.oauth_manager import AuthorizationLauncher, OAuthFlowManager
from core.integrations.platform_registry import PlatformRegistry
from core.integrations.sync_manager import SyncManager
from core.integrations.token_manager import TokenManager
from core.integrations.triplet_extractor import TripletExtractor
from core.storage.kv_store import KeyValueStore

logger = structlog.get_logger(__name__)


class Orchestrator:
    """Entry point for connect / callback / sync / status / reset."""

    def __init__(
        self,
        registry: PlatformRegistry,
        store: KeyValueStore,
        http: HttpClient,
        launcher: AuthorizationLauncher,
        notifier: Notifier | None = None,
        settings: EngineSettings | None = None,
    ):
        self.settings = settings or EngineSettings.default()
        self.registry = registry
        self.tokens = TokenManager(registry, store, http, self.settings)
        self.sync_manager = SyncManager(store, registry)
        self.extractor = TripletExtractor(registry, store, notifier, self.settings)
        self.fetcher = PlatformDataFetcher(
            registry, self.tokens, self.sync_manager, http, self.extractor, self.settings,
        )
        self.flows = OAuthFlowManager(
            registry, self.tokens, store, http, launcher, self.settings,
            on_authenticated=self._sync_after_auth,
        )
        self._syncing: set[str] = set()

    # --- Authorization ---

    async def initiate(self, platform: str) -> AuthResult:
        return await self.flows.initiate(platform)

    async def handle_callback(self, platform: str, code: str, state: str) -> AuthResult:
        return await self.flows.handle_callback(platform, code, state)

    async def handle_implicit_callback(self, platform: str, access_token: str, state: str) -> AuthResult:
        return await self.flows.handle_implicit_callback(platform, access_token, state)

    async def handle_external_token(
        self,
        platform: str,
        access_token: str,
        refresh_token: str | None = None,
        expires_in: int | None = None,
    ) -> AuthResult:
        return await self.flows.handle_external_token(platform, access_token, refresh_token, expires_in)

    async def disconnect(self, platform: str) -> bool:
        """Forget the credential. The sync cursor is kept unless reset separately."""
        self.registry.require_config(platform)
        return await self.tokens.remove(platform)

    async def _sync_after_auth(self, platform: str, explicit_credential: str | None) -> int:
        result = await self.sync(platform, explicit_credential)
        return result.fact_count

    # --- Data ---

    async def sync(self, platform: str, explicit_credential: str | None = None) -> SyncResult:
        """Fetch, extract and persist new facts for one platform."""
        self.registry.require_config(platform)
        if platform in self._syncing:
            raise OperationInProgress(f"Sync already running for {platform}", platform=platform)

        self._syncing.add(platform)
        try:
            with structlog.contextvars.bound_contextvars(platform=platform):
                user_data = await self.fetcher.fetch_user_data(platform, explicit_credential)
                stored = await self.extractor.store_triplets(platform, user_data.triplets, user_data)
                await self.sync_manager.add_facts(platform, stored)
                logger.info(
                    "Sync completed",
                    extracted=len(user_data.triplets),
                    stored=stored,
                    failed_endpoints=len(user_data.failed_endpoints),
                )
        finally:
            self._syncing.discard(platform)

        return SyncResult(
            platform=platform,
            fact_count=stored,
            extracted_count=len(user_data.triplets),
            failed_endpoints=list(user_data.failed_endpoints),
        )

    async def get_status(self, platform: str | None = None) -> list[dict[str, Any]]:
        if platform:
            self.registry.require_config(platform)
        return await self.sync_manager.get_status(self.tokens, platform)

    async def reset(self, platform: str | None = None) -> None:
        if platform:
            self.registry.require_config(platform)
        await self.sync_manager.reset(platform)
