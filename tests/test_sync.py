"""Test incremental fetching, sync cursors and the orchestrated sync."""
from datetime import datetime, timedelta, timezone

import pytest

from conftest import SPOTIFY_API, YOUTUBE_API, script_spotify
from core.errors import OperationInProgress, PlatformNotSupported, ProfileFetchFailed
from core.integrations.data_fetcher import PlatformDataFetcher
from core.integrations.models import SyncInfo, UserToken
from core.integrations.sync_manager import SyncManager
from core.integrations.token_manager import TokenManager

TOP_ARTISTS = "/me/top/artists?limit=40"
SUBSCRIPTIONS = "/subscriptions?part=snippet&mine=true&maxResults=50"
LAST_SYNC = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_fetcher(registry, store, http, settings):
    tokens = TokenManager(registry, store, http, settings)
    sync = SyncManager(store, registry)
    return PlatformDataFetcher(registry, tokens, sync, http, settings=settings), tokens, sync


async def connect_spotify(orchestrator):
    await orchestrator.tokens.store("spotify", UserToken(access_token="sp-access", platform="spotify"))


# --- Filtering ---

def test_id_filter_keeps_unseen(registry, store, http, settings):
    fetcher, _, _ = make_fetcher(registry, store, http, settings)
    last = SyncInfo(platform="spotify", last_sync_at=LAST_SYNC, last_item_ids=["a", "b"])
    payload = {"items": [{"id": "a"}, {"id": "b"}, {"id": "c"}], "total": 3}

    filtered = fetcher.filter_new_items("spotify", TOP_ARTISTS, payload, last)

    assert filtered == {"items": [{"id": "c"}], "total": 3}
    assert len(payload["items"]) == 3


def test_id_filter_on_nested_path(registry, store, http, settings):
    fetcher, _, _ = make_fetcher(registry, store, http, settings)
    last = SyncInfo(platform="spotify", last_sync_at=LAST_SYNC, last_item_ids=["ar1"])
    payload = {"artists": {"items": [{"id": "ar1"}, {"id": "ar9"}], "next": None}}

    filtered = fetcher.filter_new_items("spotify", "/me/following?type=artist&limit=50", payload, last)
    assert filtered == {"artists": {"items": [{"id": "ar9"}], "next": None}}


def test_date_filter_is_strict(registry, store, http, settings):
    fetcher, _, _ = make_fetcher(registry, store, http, settings)
    last = SyncInfo(platform="youtube", last_sync_at=LAST_SYNC)

    def sub(item_id, published):
        return {"id": item_id, "snippet": {"publishedAt": published}}

    payload = {"items": [
        sub("equal", "2024-03-01T12:00:00Z"),
        sub("newer", "2024-03-01T12:00:01Z"),
        sub("older", "2024-02-28T09:00:00Z"),
        sub("garbage", "not a date"),
        {"id": "undated", "snippet": {}},
    ]}

    filtered = fetcher.filter_new_items("youtube", SUBSCRIPTIONS, payload, last)
    assert [i["id"] for i in filtered["items"]] == ["newer"]


def test_first_sync_keeps_everything(registry, store, http, settings):
    fetcher, _, _ = make_fetcher(registry, store, http, settings)
    payload = {"items": [{"id": "a"}]}
    assert fetcher.filter_new_items("spotify", TOP_ARTISTS, payload, None) is payload


def test_cursor_without_ids_keeps_everything(registry, store, http, settings):
    fetcher, _, _ = make_fetcher(registry, store, http, settings)
    last = SyncInfo(platform="spotify", last_sync_at=LAST_SYNC, last_item_ids=None)
    payload = {"items": [{"id": "a"}]}
    assert fetcher.filter_new_items("spotify", TOP_ARTISTS, payload, last) == payload


# --- Fetching ---

@pytest.mark.asyncio
async def test_failed_endpoint_is_skipped(registry, store, http, settings):
    fetcher, tokens, sync = make_fetcher(registry, store, http, settings)
    await tokens.store("youtube", UserToken(access_token="yt", platform="youtube"))
    http.add("GET", f"{YOUTUBE_API}/channels?part=snippet&mine=true", {"items": [{"id": "UC1"}]})
    http.add("GET", f"{YOUTUBE_API}/playlists?part=snippet&mine=true&maxResults=50", {"error": "quota"}, status=403)
    http.add("GET", f"{YOUTUBE_API}{SUBSCRIPTIONS}", {"items": [
        {"id": "s1", "snippet": {"title": "Channel", "publishedAt": "2024-01-01T00:00:00Z"}},
    ]})

    user_data = await fetcher.fetch_user_data("youtube")

    assert user_data.failed_endpoints == ["/playlists?part=snippet&mine=true&maxResults=50"]
    assert list(user_data.data) == [SUBSCRIPTIONS]
    assert user_data.profile == {"items": [{"id": "UC1"}]}
    cursor = await sync.get_last_sync("youtube")
    assert cursor is not None
    assert cursor.last_item_ids is None


@pytest.mark.asyncio
async def test_profile_failure_is_fatal(registry, store, http, settings):
    fetcher, tokens, sync = make_fetcher(registry, store, http, settings)
    await tokens.store("youtube", UserToken(access_token="yt", platform="youtube"))
    http.add("GET", f"{YOUTUBE_API}/channels?part=snippet&mine=true", {"error": "unauthorized"}, status=401)

    with pytest.raises(ProfileFetchFailed):
        await fetcher.fetch_user_data("youtube")
    assert await sync.get_last_sync("youtube") is None


@pytest.mark.asyncio
async def test_seen_ids_come_from_unfiltered_payload(registry, store, http, settings):
    fetcher, tokens, sync = make_fetcher(registry, store, http, settings)
    script_spotify(http)
    await tokens.store("spotify", UserToken(access_token="sp", platform="spotify"))
    await sync.record_sync("spotify", ["ar1"])

    await fetcher.fetch_user_data("spotify")

    cursor = await sync.get_last_sync("spotify")
    assert cursor.last_item_ids == ["ar1", "t1", "ar2"]


@pytest.mark.asyncio
async def test_explicit_credential_skips_token_lookup(registry, store, http, settings):
    fetcher, _, _ = make_fetcher(registry, store, http, settings)
    script_spotify(http)

    await fetcher.fetch_user_data("spotify", explicit_credential="one-off")
    assert http.calls_to(f"{SPOTIFY_API}/me")[0].headers == {"Authorization": "Bearer one-off"}


# --- Orchestrated sync ---

@pytest.mark.asyncio
async def test_second_sync_filters_everything(orchestrator, http):
    script_spotify(http)
    await connect_spotify(orchestrator)

    first = await orchestrator.sync("spotify")
    second = await orchestrator.sync("spotify")

    assert first.fact_count == 3
    assert second.extracted_count == 0
    assert second.fact_count == 0
    status = await orchestrator.get_status("spotify")
    assert status[0]["connected"]
    assert status[0]["last_sync"]["facts"] == 3


@pytest.mark.asyncio
async def test_reset_refetches_but_never_duplicates(orchestrator, http):
    script_spotify(http)
    await connect_spotify(orchestrator)

    await orchestrator.sync("spotify")
    await orchestrator.reset("spotify")
    assert await orchestrator.sync_manager.get_last_sync("spotify") is None

    again = await orchestrator.sync("spotify")

    assert again.extracted_count == 3
    assert again.fact_count == 0
    assert len(await orchestrator.extractor.list_records("spotify")) == 1


@pytest.mark.asyncio
async def test_status_for_all_platforms(orchestrator, http):
    script_spotify(http)
    await connect_spotify(orchestrator)
    await orchestrator.sync("spotify")

    status = {s["platform"]: s for s in await orchestrator.get_status()}

    assert set(status) == {"youtube", "spotify", "twitch", "twitter", "discord"}
    assert status["spotify"]["connected"]
    assert status["youtube"] == {"platform": "youtube", "connected": False, "last_sync": None}


@pytest.mark.asyncio
async def test_concurrent_sync_rejected(orchestrator):
    orchestrator._syncing.add("spotify")
    with pytest.raises(OperationInProgress):
        await orchestrator.sync("spotify")


@pytest.mark.asyncio
async def test_unknown_platform_sync(orchestrator):
    with pytest.raises(PlatformNotSupported):
        await orchestrator.sync("myspace")


@pytest.mark.asyncio
async def test_disconnect_keeps_cursor(orchestrator, http):
    script_spotify(http)
    await connect_spotify(orchestrator)
    await orchestrator.sync("spotify")

    assert await orchestrator.disconnect("spotify")
    assert not await orchestrator.tokens.is_connected("spotify")
    assert await orchestrator.sync_manager.get_last_sync("spotify") is not None


@pytest.mark.asyncio
async def test_record_sync_carries_fact_total(store, registry):
    sync = SyncManager(store, registry)
    await sync.record_sync("spotify", ["a"])
    await sync.add_facts("spotify", 5)
    await sync.record_sync("spotify", ["b"])

    cursor = await sync.get_last_sync("spotify")
    assert cursor.total_facts == 5
    assert cursor.last_item_ids == ["b"]
    assert cursor.last_sync_at > datetime.now(timezone.utc) - timedelta(minutes=1)


@pytest.mark.asyncio
async def test_youtube_reset_treats_everything_as_new(orchestrator, http):
    await orchestrator.tokens.store("youtube", UserToken(access_token="yt", platform="youtube"))
    http.add("GET", f"{YOUTUBE_API}/channels?part=snippet&mine=true", {"items": [{"id": "UC1"}]})
    http.add("GET", f"{YOUTUBE_API}/playlists?part=snippet&mine=true&maxResults=50", {"items": []})
    http.add("GET", f"{YOUTUBE_API}{SUBSCRIPTIONS}", {"items": [
        {"id": "s1", "snippet": {"title": "Old Channel", "publishedAt": "2020-01-01T00:00:00Z",
                                 "resourceId": {"channelId": "c1"}}},
    ]})

    first = await orchestrator.sync("youtube")
    unchanged = await orchestrator.sync("youtube")
    await orchestrator.reset("youtube")
    after_reset = await orchestrator.sync("youtube")

    assert first.extracted_count == 1
    assert unchanged.extracted_count == 0
    assert after_reset.extracted_count == 1
    assert after_reset.fact_count == 0
