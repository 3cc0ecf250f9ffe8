"""Interactive authorization through the system browser.

``launch`` opens the provider's consent page and parks a future keyed by the
``state`` parameter. The provider redirects to ``/oauth/callback``, whose page
posts the full URL (fragment included) to ``/oauth/redirect``, which calls
``resolve`` and wakes the waiting flow.
"""

import asyncio
import webbrowser
from urllib.parse import parse_qs, urlsplit

import structlog

logger = structlog.get_logger(__name__)


def _state_of(url: str) -> str | None:
    parts = urlsplit(url)
    for component in (parts.query, parts.fragment):
        values = parse_qs(component).get("state")
        if values:
            return values[0]
    return None


class BrowserRedirectLauncher:
    """AuthorizationLauncher backed by ``webbrowser`` + the redirect routes."""

    def __init__(self, open_url=webbrowser.open):
        self._open_url = open_url
        self._waiting: dict[str, asyncio.Future] = {}

    async def launch(self, url: str) -> str | None:
        state = _state_of(url)
        if state is None:
            raise ValueError("Authorization URL carries no state")

        future = asyncio.get_running_loop().create_future()
        self._waiting[state] = future
        try:
            self._open_url(url)
            return await future
        finally:
            self._waiting.pop(state, None)

    async def clear_cached_sessions(self) -> None:
        """Abandon redirects nobody is waiting for any more."""
        for state, future in list(self._waiting.items()):
            if future.done():
                self._waiting.pop(state, None)

    async def open_page(self, url: str) -> None:
        self._open_url(url)

    def resolve(self, redirect_url: str) -> bool:
        """Hand a captured redirect to its waiting flow. False if nobody waits for it."""
        state = _state_of(redirect_url)
        future = self._waiting.get(state) if state else None
        if future is None or future.done():
            logger.warning("Redirect without a waiting flow")
            return False
        future.set_result(redirect_url)
        return True

    def cancel(self, state: str) -> bool:
        """User closed the window: the flow sees an empty redirect."""
        future = self._waiting.get(state)
        if future is None or future.done():
            return False
        future.set_result(None)
        return True

    def cancel_all(self) -> int:
        """Cancel every waiting flow; returns how many were waiting."""
        return sum(self.cancel(state) for state in list(self._waiting))
