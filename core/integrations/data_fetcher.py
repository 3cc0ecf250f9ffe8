"""
Platform Sync Data Fetcher — authenticated retrieval with incremental filtering.

Pipeline per sync:
    credential → profile (fatal on failure)
    → each data endpoint independently (failure logged, endpoint skipped)
        → filter against the last cursor → extract facts right away
    → record the new cursor

Filtering rules, first match wins:
- date field configured: keep items strictly newer than the last sync
- id field configured and prior ids known: keep ids not seen last time
- otherwise (first sync, or after a reset): keep everything
"""
from __future__ import annotations
from datetime import datetime
from typing import Any
from urllib.parse import quote

import structlog

from core.config import EngineSettings
from core.errors import ProfileFetchFailed, TransportError
from core.integrations.http_client import HttpClient
from core.integrations.models import SyncInfo, UserData, parse_instant
from core.integrations.platform_registry import PlatformConfig, PlatformRegistry, get_nested
from core.integrations.sync_manager import SyncManager
from core.integrations.token_manager import TokenManager
from core.integrations.triplet_extractor import TripletExtractor

logger = structlog.get_logger(__name__)


def _with_items(payload: Any, path: str | None, items: list[Any]) -> Any:
    """Copy of ``payload`` with the array at ``path`` replaced."""
    if not path:
        return items
    head, _, rest = path.partition(".")
    if not isinstance(payload, dict):
        return payload
    copied = dict(payload)
    copied[head] = _with_items(payload.get(head), rest or None, items) if rest else items
    return copied


def _item_date(item: Any, date_field: str) -> datetime | None:
    try:
        return parse_instant(get_nested(item, date_field))
    except (TypeError, ValueError):
        return None


class PlatformDataFetcher:
    """Fetches profile + data endpoints and feeds each endpoint to the extractor."""

    def __init__(
        self,
        registry: PlatformRegistry,
        tokens: TokenManager,
        sync: SyncManager,
        http: HttpClient,
        extractor: TripletExtractor | None = None,
        settings: EngineSettings | None = None,
    ):
        self.registry = registry
        self.tokens = tokens
        self.sync = sync
        self.http = http
        self.extractor = extractor
        self.settings = settings or EngineSettings.default()

    async def fetch_user_data(self, platform: str, explicit_credential: str | None = None) -> UserData:
        config = self.registry.require_config(platform)
        access_token = explicit_credential or await self.tokens.get_valid_access_credential(platform)
        last_sync = await self.sync.get_last_sync(platform)
        headers = self._headers(config, access_token)

        user_data = UserData(platform=platform)
        user_data.profile = await self._fetch_profile(config, headers)

        user_id = None
        if config.user_id_path and config.user_id_param:
            user_id = get_nested(user_data.profile, config.user_id_path)

        seen_ids: list[str] = []
        for endpoint in config.data_endpoints:
            url = self._endpoint_url(config, endpoint, user_id)
            try:
                payload = await self._get_json(url, headers)
            except (TransportError, ValueError) as exc:
                logger.warning("Endpoint fetch failed", platform=platform, endpoint=endpoint, error=str(exc))
                user_data.failed_endpoints.append(endpoint)
                continue

            try:
                filtered = self.filter_new_items(platform, endpoint, payload, last_sync)
                user_data.data[endpoint] = filtered
                if self.extractor is not None:
                    facts = self.extractor.extract_triplets(platform, endpoint, filtered)
                    user_data.triplets.extend(facts)
                    logger.info("Endpoint processed", platform=platform, endpoint=endpoint, facts=len(facts))
                seen_ids.extend(self.item_ids(platform, endpoint, payload))
            except Exception:
                logger.exception("Endpoint processing failed", platform=platform, endpoint=endpoint)
                user_data.failed_endpoints.append(endpoint)

        await self.sync.record_sync(platform, list(dict.fromkeys(seen_ids)) if config.id_field else None)
        return user_data

    # --- HTTP ---

    @staticmethod
    def _headers(config: PlatformConfig, access_token: str) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {access_token}"}
        if config.requires_client_header:
            headers[config.client_header_name] = config.client_id
        return headers

    @staticmethod
    def _endpoint_url(config: PlatformConfig, endpoint: str, user_id: Any) -> str:
        url = config.url_for(endpoint)
        if user_id and config.user_id_param:
            separator = "&" if "?" in endpoint else "?"
            url = f"{url}{separator}{config.user_id_param}={quote(str(user_id))}"
        return url

    async def _get_json(self, url: str, headers: dict[str, str]) -> Any:
        resp = await self.http.request("GET", url, headers=headers, timeout=self.settings.data_request_timeout)
        if not resp.ok:
            raise TransportError(f"GET {url} answered HTTP {resp.status_code}")
        return resp.json()

    async def _fetch_profile(self, config: PlatformConfig, headers: dict[str, str]) -> Any:
        url = config.url_for(config.profile_endpoint)
        try:
            resp = await self.http.request("GET", url, headers=headers, timeout=self.settings.data_request_timeout)
        except TransportError as exc:
            raise ProfileFetchFailed(f"Profile fetch failed for {config.platform}: {exc}",
                                     platform=config.platform) from exc
        if not resp.ok:
            raise ProfileFetchFailed(
                f"Profile fetch failed for {config.platform}: HTTP {resp.status_code}",
                platform=config.platform,
                status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as exc:
            raise ProfileFetchFailed(f"Profile for {config.platform} is not JSON",
                                     platform=config.platform) from exc

    # --- Incremental filtering ---

    def filter_new_items(
        self,
        platform: str,
        endpoint: str,
        payload: Any,
        last_sync: SyncInfo | None,
    ) -> Any:
        if last_sync is None:
            return payload

        config = self.registry.require_config(platform)
        path = self.registry.items_path(platform, endpoint)
        items = get_nested(payload, path)
        if not isinstance(items, list):
            return payload

        if config.date_field:
            kept = []
            for item in items:
                item_date = _item_date(item, config.date_field)
                if item_date is not None and item_date > last_sync.last_sync_at:
                    kept.append(item)
        elif config.id_field and last_sync.last_item_ids is not None:
            previous = set(last_sync.last_item_ids)
            kept = [
                item for item in items
                if not (isinstance(item, dict) and str(item.get(config.id_field)) in previous)
            ]
        else:
            return payload

        logger.debug("Items filtered", platform=platform, endpoint=endpoint, before=len(items), after=len(kept))
        return _with_items(payload, path, kept)

    def item_ids(self, platform: str, endpoint: str, payload: Any) -> list[str]:
        """Ids of every fetched item, for the next sync's id filter."""
        config = self.registry.require_config(platform)
        if not config.id_field:
            return []
        return [
            str(item[config.id_field])
            for item in self.registry.resolve_items(platform, endpoint, payload)
            if isinstance(item, dict) and item.get(config.id_field) is not None
        ]
