"""Shared fakes for the engine tests: scripted HTTP, a scripted launcher, test credentials."""
import inspect
import json
from dataclasses import dataclass, field
from urllib.parse import parse_qs, urlsplit

import pytest

from core.config import ClientCredential, ClientCredentials, EngineSettings
from core.errors import TransportError
from core.integrations.http_client import HttpResponse
from core.integrations.orchestrator import Orchestrator
from core.storage import InMemoryKeyValueStore
from platforms import build_registry

REDIRECT_URI = "http://localhost:8000/oauth/callback"

SPOTIFY_TOKEN_URL = "https://accounts.spotify.com/api/token"
SPOTIFY_API = "https://api.spotify.com/v1"
YOUTUBE_TOKEN_URL = "https://oauth2.googleapis.com/token"
YOUTUBE_API = "https://www.googleapis.com/youtube/v3"
TWITCH_API = "https://api.twitch.tv/helix"
DISCORD_API = "https://discord.com/api"


@dataclass
class RecordedRequest:
    method: str
    url: str
    headers: dict = field(default_factory=dict)
    data: dict | None = None
    content: str | bytes | None = None


class FakeHttpClient:
    """Answers from a script keyed by (method, url). The last scripted answer repeats."""

    def __init__(self):
        self.routes: dict[tuple[str, str], list] = {}
        self.requests: list[RecordedRequest] = []

    def add(self, method, url, body=None, status=200, error=None, text=None):
        if text is None:
            text = json.dumps(body) if body is not None else ""
        answer = error or HttpResponse(status_code=status, text=text)
        self.routes.setdefault((method, url), []).append(answer)
        return self

    def calls_to(self, url):
        return [r for r in self.requests if r.url == url]

    async def request(self, method, url, *, headers=None, data=None, content=None, timeout=None):
        self.requests.append(RecordedRequest(method, url, dict(headers or {}), data, content))
        queue = self.routes.get((method, url))
        if not queue:
            raise TransportError(f"No route for {method} {url}")
        answer = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(answer, Exception):
            raise answer
        return answer


class FakeLauncher:
    """Answers ``launch`` with ``redirect(auth_url)``; None means the user closed the window."""

    def __init__(self, redirect=None):
        self.redirect = redirect
        self.launched: list[str] = []
        self.opened: list[str] = []
        self.cleared = 0

    async def launch(self, url):
        self.launched.append(url)
        if self.redirect is None:
            return None
        result = self.redirect(url)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def clear_cached_sessions(self):
        self.cleared += 1

    async def open_page(self, url):
        self.opened.append(url)


def state_of(auth_url: str) -> str:
    return parse_qs(urlsplit(auth_url).query)["state"][0]


def query_of(auth_url: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(auth_url).query).items()}


def code_redirect(code="auth-code"):
    """Redirect answering with ``code`` and the state the URL was issued with."""
    return lambda url: f"{REDIRECT_URI}?code={code}&state={state_of(url)}"


def implicit_redirect(access_token="implicit-token"):
    return lambda url: f"{REDIRECT_URI}#access_token={access_token}&state={state_of(url)}&token_type=bearer"


def script_spotify(http: FakeHttpClient) -> FakeHttpClient:
    """Token endpoint, profile and all three data endpoints."""
    http.add("POST", SPOTIFY_TOKEN_URL, {"access_token": "sp-access", "refresh_token": "sp-refresh", "expires_in": 3600})
    http.add("GET", f"{SPOTIFY_API}/me", {
        "id": "u1", "display_name": "Me",
        "external_urls": {"spotify": "https://open.spotify.com/user/u1"},
    })
    http.add("GET", f"{SPOTIFY_API}/me/following?type=artist&limit=50", {"artists": {"items": [
        {"id": "ar1", "name": "Radiohead", "external_urls": {"spotify": "https://open.spotify.com/artist/ar1"}},
    ]}})
    http.add("GET", f"{SPOTIFY_API}/me/top/tracks?limit=40", {"items": [
        {"id": "t1", "name": "Idioteque", "artists": [{"name": "Radiohead"}],
         "external_urls": {"spotify": "https://open.spotify.com/track/t1"}},
    ]})
    http.add("GET", f"{SPOTIFY_API}/me/top/artists?limit=40", {"items": [
        {"id": "ar2", "name": "Bjork", "external_urls": {"spotify": "https://open.spotify.com/artist/ar2"}},
    ]})
    return http


@pytest.fixture
def credentials():
    return ClientCredentials(
        youtube=ClientCredential("yt-client", "yt-secret"),
        spotify=ClientCredential("spotify-client", "spotify-secret"),
        twitch=ClientCredential("twitch-client"),
        twitter=ClientCredential("twitter-client"),
        discord=ClientCredential("discord-client"),
    )


@pytest.fixture
def registry(credentials):
    return build_registry(credentials)


@pytest.fixture
def settings():
    return EngineSettings(interactive_timeout=1.0)


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def http():
    return FakeHttpClient()


@pytest.fixture
def launcher():
    return FakeLauncher()


@pytest.fixture
def orchestrator(registry, store, http, launcher, settings):
    return Orchestrator(registry, store, http, launcher, settings=settings)
