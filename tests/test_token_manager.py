"""Test credential storage, expiry margin and the refresh grant."""
from datetime import timedelta

import pytest

from conftest import SPOTIFY_TOKEN_URL, YOUTUBE_TOKEN_URL
from core.errors import NoCredential, RefreshFailed, TransportError
from core.integrations.models import UserToken, utc_now
from core.integrations.token_manager import TokenManager


def expiring_in(seconds, platform="youtube", refresh_token="old-refresh"):
    return UserToken(
        access_token="old-access",
        platform=platform,
        refresh_token=refresh_token,
        expires_at=utc_now() + timedelta(seconds=seconds),
    )


@pytest.mark.asyncio
async def test_missing_token(registry, store, http, settings):
    tokens = TokenManager(registry, store, http, settings)
    assert not await tokens.is_connected("youtube")
    with pytest.raises(NoCredential):
        await tokens.get_valid_access_credential("youtube")


@pytest.mark.asyncio
async def test_fresh_token_used_as_is(registry, store, http, settings):
    tokens = TokenManager(registry, store, http, settings)
    await tokens.store("youtube", expiring_in(3600))

    assert await tokens.get_valid_access_credential("youtube") == "old-access"
    assert http.requests == []


@pytest.mark.asyncio
async def test_token_without_expiry_never_refreshes(registry, store, http, settings):
    tokens = TokenManager(registry, store, http, settings)
    await tokens.store("twitch", UserToken(access_token="tw", platform="twitch"))
    assert await tokens.get_valid_access_credential("twitch") == "tw"


@pytest.mark.asyncio
async def test_refresh_inside_margin(registry, store, http, settings):
    tokens = TokenManager(registry, store, http, settings)
    await tokens.store("youtube", expiring_in(60))
    http.add("POST", YOUTUBE_TOKEN_URL, {"access_token": "new-access", "expires_in": 3600})

    assert await tokens.get_valid_access_credential("youtube") == "new-access"

    call = http.calls_to(YOUTUBE_TOKEN_URL)[0]
    assert call.data == {
        "grant_type": "refresh_token",
        "refresh_token": "old-refresh",
        "client_id": "yt-client",
        "client_secret": "yt-secret",
    }
    stored = await tokens.get("youtube")
    assert stored.access_token == "new-access"
    # Provider did not rotate the refresh token
    assert stored.refresh_token == "old-refresh"
    assert not stored.is_expired(tokens.refresh_margin)


@pytest.mark.asyncio
async def test_rotated_refresh_token_replaces_old(registry, store, http, settings):
    tokens = TokenManager(registry, store, http, settings)
    await tokens.store("youtube", expiring_in(-10))
    http.add("POST", YOUTUBE_TOKEN_URL, {"access_token": "new", "refresh_token": "rotated", "expires_in": 3600})

    await tokens.get_valid_access_credential("youtube")
    assert (await tokens.get("youtube")).refresh_token == "rotated"


@pytest.mark.asyncio
async def test_public_client_refresh_omits_secret(registry, store, http, settings):
    tokens = TokenManager(registry, store, http, settings)
    await tokens.store("spotify", expiring_in(0, platform="spotify"))
    http.add("POST", SPOTIFY_TOKEN_URL, {"access_token": "new", "expires_in": 3600})

    await tokens.get_valid_access_credential("spotify")
    assert "client_secret" not in http.calls_to(SPOTIFY_TOKEN_URL)[0].data


@pytest.mark.asyncio
async def test_implicit_token_cannot_refresh(registry, store, http, settings):
    tokens = TokenManager(registry, store, http, settings)
    await tokens.store("twitch", expiring_in(-10, platform="twitch", refresh_token=None))

    with pytest.raises(RefreshFailed):
        await tokens.get_valid_access_credential("twitch")
    assert http.requests == []


@pytest.mark.asyncio
async def test_expired_without_refresh_token(registry, store, http, settings):
    tokens = TokenManager(registry, store, http, settings)
    await tokens.store("youtube", expiring_in(-10, refresh_token=None))
    with pytest.raises(RefreshFailed):
        await tokens.get_valid_access_credential("youtube")


@pytest.mark.asyncio
async def test_rejected_refresh(registry, store, http, settings):
    tokens = TokenManager(registry, store, http, settings)
    await tokens.store("youtube", expiring_in(-10))
    http.add("POST", YOUTUBE_TOKEN_URL, {"error": "invalid_grant"}, status=400)

    with pytest.raises(RefreshFailed) as exc_info:
        await tokens.get_valid_access_credential("youtube")
    assert exc_info.value.details["status_code"] == 400
    assert (await tokens.get("youtube")).access_token == "old-access"


@pytest.mark.asyncio
async def test_refresh_transport_error(registry, store, http, settings):
    tokens = TokenManager(registry, store, http, settings)
    await tokens.store("youtube", expiring_in(-10))
    http.add("POST", YOUTUBE_TOKEN_URL, error=TransportError("connection reset"))

    with pytest.raises(RefreshFailed):
        await tokens.get_valid_access_credential("youtube")


@pytest.mark.asyncio
async def test_remove(registry, store, http, settings):
    tokens = TokenManager(registry, store, http, settings)
    await tokens.store("youtube", expiring_in(3600))
    assert await tokens.remove("youtube")
    assert not await tokens.remove("youtube")
    assert not await tokens.is_connected("youtube")


@pytest.mark.asyncio
async def test_refresh_answering_html(registry, store, http, settings):
    tokens = TokenManager(registry, store, http, settings)
    await tokens.store("youtube", expiring_in(-10))
    http.add("POST", YOUTUBE_TOKEN_URL, text="<html>oops</html>")

    with pytest.raises(RefreshFailed):
        await tokens.get_valid_access_credential("youtube")
    assert (await tokens.get("youtube")).access_token == "old-access"


@pytest.mark.asyncio
async def test_refresh_answering_a_list(registry, store, http, settings):
    tokens = TokenManager(registry, store, http, settings)
    await tokens.store("youtube", expiring_in(-10))
    http.add("POST", YOUTUBE_TOKEN_URL, [{"access_token": "new"}])

    with pytest.raises(RefreshFailed):
        await tokens.get_valid_access_credential("youtube")
