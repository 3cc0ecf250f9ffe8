"""
Platform Sync HTTP port.

Every outbound call (token exchange, refresh, profile and data fetches) goes
through ``HttpClient.request``. The default implementation wraps an httpx
AsyncClient; tests substitute a scripted fake.

No retries happen at this layer: authorization codes are single-use and
refresh tokens may rotate, so a retry belongs to the caller or to nobody.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Protocol
import json
import time

import httpx
import structlog

from core.errors import TransportError

logger = structlog.get_logger(__name__)


@dataclass
class HttpResponse:
    """Standardized inbound response."""
    status_code: int
    text: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    latency_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        return json.loads(self.text) if self.text else None


class HttpClient(Protocol):
    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        data: dict[str, str] | None = None,
        content: str | bytes | None = None,
        timeout: float | None = None,
    ) -> HttpResponse: ...


class HttpxClient:
    """HttpClient backed by a shared httpx.AsyncClient.

    ``data`` is sent form-encoded, which is what every OAuth token endpoint
    expects; ``content`` is sent as-is. Network failures surface as ``TransportError``.
    """

    DEFAULT_TIMEOUT: float = 20.0

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client or httpx.AsyncClient()

    async def request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        data: dict[str, str] | None = None,
        content: str | bytes | None = None,
        timeout: float | None = None,
    ) -> HttpResponse:
        start = time.time()
        try:
            resp = await self._client.request(
                method=method,
                url=url,
                headers=headers,
                data=data,
                content=content,
                timeout=timeout or self.DEFAULT_TIMEOUT,
            )
        except httpx.HTTPError as exc:
            logger.warning("HTTP request failed", method=method, url=url, error=str(exc))
            raise TransportError(f"{method} {url} failed: {exc}") from exc

        return HttpResponse(
            status_code=resp.status_code,
            text=resp.text,
            headers=dict(resp.headers),
            latency_ms=(time.time() - start) * 1000,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
