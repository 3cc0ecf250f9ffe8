"""
Platform Sync notification port.

Fire-and-forget events for the UI (badge counts and the like). A failing
notifier must never undo or block fact persistence, so callers go through
``notify_safely``.
"""
from __future__ import annotations
from typing import Protocol
import hashlib
import hmac
import json
import uuid

import structlog

from core.integrations.http_client import HttpClient

logger = structlog.get_logger(__name__)

FACTS_UPDATED = "facts_updated"


class Notifier(Protocol):
    async def notify(self, event: str) -> None: ...


class NullNotifier:
    """Default notifier: drops every event."""

    async def notify(self, event: str) -> None:
        return None


class WebhookNotifier:
    """POSTs ``{"event": ...}`` to a URL, HMAC-SHA256 signed when a secret is set.

    Single attempt: a missed badge refresh is harmless, a duplicate one is noise.
    """

    def __init__(self, http: HttpClient, url: str, secret: str = "", timeout: float = 5.0):
        self.http = http
        self.url = url
        self.secret = secret
        self.timeout = timeout

    def _sign_payload(self, payload: str) -> str:
        return hmac.new(
            self.secret.encode("utf-8"),
            payload.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()

    async def notify(self, event: str) -> None:
        body = json.dumps({"event": event}, sort_keys=True)
        headers = {
            "Content-Type": "application/json",
            "X-PlatformSync-Event": event,
            "X-PlatformSync-Delivery": str(uuid.uuid4()),
        }
        if self.secret:
            headers["X-PlatformSync-Signature"] = f"sha256={self._sign_payload(body)}"

        resp = await self.http.request(
            "POST", self.url, headers=headers, content=body, timeout=self.timeout,
        )
        if not resp.ok:
            raise RuntimeError(f"Webhook {self.url} answered HTTP {resp.status_code}")


async def notify_safely(notifier: Notifier, event: str) -> bool:
    """Deliver an event; failures are logged and reported, never raised."""
    try:
        await notifier.notify(event)
        return True
    except Exception as exc:
        logger.warning("Notification failed", notify_event=event, error=str(exc))
        return False
