"""
Platform Sync Token Manager.

Persists one credential per platform (``token:{platform}``), decides when it
needs refreshing, and performs the refresh grant for authorization-code
platforms. Implicit and externally-delegated platforms have no refresh path:
an expired token there means the user must reconnect.
"""
from __future__ import annotations
from datetime import timedelta

import structlog

from core.config import EngineSettings
from core.errors import NoCredential, RefreshFailed, TransportError
from core.integrations.http_client import HttpClient
from core.integrations.models import UserToken
from core.integrations.platform_registry import AuthFlowKind, PlatformRegistry
from core.storage.kv_store import KeyValueStore

logger = structlog.get_logger(__name__)


def token_key(platform: str) -> str:
    return f"token:{platform}"


class TokenManager:
    """Stores, validates and refreshes per-platform credentials."""

    def __init__(
        self,
        registry: PlatformRegistry,
        store: KeyValueStore,
        http: HttpClient,
        settings: EngineSettings | None = None,
    ):
        self.registry = registry
        self._store = store
        self.http = http
        self.settings = settings or EngineSettings.default()

    @property
    def refresh_margin(self) -> timedelta:
        return timedelta(seconds=self.settings.refresh_margin_seconds)

    async def store(self, platform: str, token: UserToken) -> None:
        await self._store.set(token_key(platform), token.to_dict())
        logger.info("Token stored", platform=platform, expires_at=token.expires_at)

    async def get(self, platform: str) -> UserToken | None:
        data = await self._store.get(token_key(platform))
        return UserToken.from_dict(data) if data else None

    async def remove(self, platform: str) -> bool:
        removed = await self._store.delete(token_key(platform))
        if removed:
            logger.info("Token removed", platform=platform)
        return removed

    async def is_connected(self, platform: str) -> bool:
        """True when a token record exists, expired or not."""
        return await self.get(platform) is not None

    async def get_valid_access_credential(self, platform: str) -> str:
        """Return a usable access token, refreshing it first when inside the margin."""
        token = await self.get(platform)
        if token is None:
            raise NoCredential(f"No token found for {platform}", platform=platform)

        if token.is_expired(self.refresh_margin):
            logger.info("Token expired, refreshing", platform=platform)
            token = await self._refresh(platform, token)

        return token.access_token

    async def _refresh(self, platform: str, token: UserToken) -> UserToken:
        config = self.registry.require_config(platform)

        if config.flow is not AuthFlowKind.AUTHORIZATION_CODE or not config.token_url:
            raise RefreshFailed(
                f"Token expired for {platform} and its flow has no refresh grant",
                platform=platform,
            )
        if not token.refresh_token:
            raise RefreshFailed(f"Token expired for {platform} with no refresh token", platform=platform)

        data = {
            "grant_type": "refresh_token",
            "refresh_token": token.refresh_token,
            "client_id": config.client_id,
        }
        if config.client_secret and not config.requires_pkce:
            data["client_secret"] = config.client_secret

        try:
            resp = await self.http.request(
                "POST",
                config.token_url,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                data=data,
                timeout=self.settings.token_request_timeout,
            )
        except TransportError as exc:
            raise RefreshFailed(f"Token refresh failed for {platform}: {exc}", platform=platform) from exc

        if not resp.ok:
            logger.warning("Token refresh rejected", platform=platform, status=resp.status_code)
            raise RefreshFailed(
                f"Token refresh failed for {platform}: HTTP {resp.status_code}",
                platform=platform,
                status_code=resp.status_code,
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise RefreshFailed(f"Token refresh for {platform} returned invalid JSON", platform=platform) from exc
        if not isinstance(body, dict) or not body.get("access_token"):
            raise RefreshFailed(f"Token refresh for {platform} returned no access token", platform=platform)

        try:
            refreshed = UserToken.from_token_response(platform, body, previous=token)
        except (TypeError, ValueError) as exc:
            raise RefreshFailed(f"Token refresh for {platform} is malformed: {exc}", platform=platform) from exc
        await self.store(platform, refreshed)
        logger.info("Token refreshed", platform=platform)
        return refreshed
