"""Test the browser redirect launcher."""
import asyncio

import pytest

from api.launcher import BrowserRedirectLauncher

AUTH_URL = "https://accounts.spotify.com/authorize?client_id=c&state=abc"


@pytest.mark.asyncio
async def test_redirect_resolves_waiting_launch():
    opened = []
    launcher = BrowserRedirectLauncher(open_url=opened.append)

    task = asyncio.create_task(launcher.launch(AUTH_URL))
    await asyncio.sleep(0)
    assert opened == [AUTH_URL]

    redirect = "http://localhost:8000/oauth/callback#access_token=t&state=abc"
    assert launcher.resolve(redirect)
    assert await task == redirect
    assert not launcher.resolve(redirect)


@pytest.mark.asyncio
async def test_cancel_returns_empty_redirect():
    launcher = BrowserRedirectLauncher(open_url=lambda url: True)
    task = asyncio.create_task(launcher.launch(AUTH_URL))
    await asyncio.sleep(0)

    assert launcher.cancel("abc")
    assert await task is None
    assert not launcher.cancel("abc")


@pytest.mark.asyncio
async def test_launch_requires_state():
    launcher = BrowserRedirectLauncher(open_url=lambda url: True)
    with pytest.raises(ValueError):
        await launcher.launch("https://accounts.spotify.com/authorize?client_id=c")


def test_unknown_redirect_is_refused():
    launcher = BrowserRedirectLauncher(open_url=lambda url: True)
    assert not launcher.resolve("http://localhost:8000/oauth/callback?code=c&state=nobody")
    assert not launcher.resolve("http://localhost:8000/oauth/callback")


@pytest.mark.asyncio
async def test_cancel_all_wakes_every_flow():
    launcher = BrowserRedirectLauncher(open_url=lambda url: True)
    first = asyncio.create_task(launcher.launch(AUTH_URL))
    second = asyncio.create_task(launcher.launch("https://id.twitch.tv/oauth2/authorize?state=xyz"))
    await asyncio.sleep(0)

    assert launcher.cancel_all() == 2
    assert await first is None
    assert await second is None
    assert launcher.cancel_all() == 0
