"""YouTube: authorization code with a confidential client, date-based sync."""

from core.config import ClientCredential
from core.integrations.platform_registry import (
    AuthFlowKind,
    PlatformConfig,
    PlatformDefinition,
    ResponseShape,
    TripletRule,
    get_nested,
)
from platforms import predicates


def _channel_url(profile):
    channel_id = get_nested(profile, "items.0.id")
    return f"https://www.youtube.com/channel/{channel_id}" if channel_id else None


def definition(credential: ClientCredential) -> PlatformDefinition:
    config = PlatformConfig(
        platform="youtube",
        display_name="YouTube",
        client_id=credential.client_id,
        client_secret=credential.client_secret,
        flow=AuthFlowKind.AUTHORIZATION_CODE,
        scopes=("https://www.googleapis.com/auth/youtube.readonly",),
        auth_url="https://accounts.google.com/o/oauth2/v2/auth",
        token_url="https://oauth2.googleapis.com/token",
        api_base_url="https://www.googleapis.com/youtube/v3",
        profile_endpoint="/channels?part=snippet&mine=true",
        data_endpoints=(
            "/playlists?part=snippet&mine=true&maxResults=50",
            "/subscriptions?part=snippet&mine=true&maxResults=50",
        ),
        response_shape=ResponseShape.ITEMS,
        date_field="snippet.publishedAt",
        homepage="https://www.youtube.com",
        profile_url=_channel_url,
    )
    rules = [
        TripletRule(
            pattern="subscriptions",
            predicate=predicates.SUBSCRIBES_TO,
            extract_object=lambda item: item["snippet"]["title"],
            extract_object_url=lambda item: (
                f"https://www.youtube.com/channel/{item['snippet']['resourceId']['channelId']}"
            ),
        ),
        TripletRule(
            pattern="playlists",
            predicate=predicates.CREATED_PLAYLIST,
            extract_object=lambda item: item["snippet"]["title"],
            extract_object_url=lambda item: f"https://www.youtube.com/playlist?list={item['id']}",
        ),
    ]
    return PlatformDefinition(config=config, rules=rules)
