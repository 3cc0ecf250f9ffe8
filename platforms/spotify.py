"""Spotify: authorization code + PKCE (public client), id-based sync."""

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


def _spotify_url(item):
    return get_nested(item, "external_urls.spotify")


def _track_label(item):
    return f"{item['name']} by {item['artists'][0]['name']}"


def definition(credential: ClientCredential) -> PlatformDefinition:
    config = PlatformConfig(
        platform="spotify",
        display_name="Spotify",
        client_id=credential.client_id,
        client_secret=credential.client_secret,
        flow=AuthFlowKind.AUTHORIZATION_CODE,
        requires_pkce=True,
        scopes=("user-read-private", "user-follow-read", "user-top-read"),
        auth_url="https://accounts.spotify.com/authorize",
        token_url="https://accounts.spotify.com/api/token",
        api_base_url="https://api.spotify.com/v1",
        profile_endpoint="/me",
        data_endpoints=(
            "/me/following?type=artist&limit=50",
            "/me/top/tracks?limit=40",
            "/me/top/artists?limit=40",
        ),
        response_shape=ResponseShape.ITEMS,
        id_field="id",
        homepage="https://open.spotify.com",
        profile_url=_spotify_url,
    )
    rules = [
        TripletRule(
            pattern="following",
            predicate=predicates.FOLLOWS,
            extract_object=lambda artist: artist["name"],
            extract_object_url=_spotify_url,
            extract_from_path="artists.items",
        ),
        TripletRule(
            pattern="top/tracks",
            predicate=predicates.TOP_TRACK,
            extract_object=_track_label,
            extract_object_url=_spotify_url,
        ),
        TripletRule(
            pattern="top/artists",
            predicate=predicates.TOP_ARTIST,
            extract_object=lambda artist: artist["name"],
            extract_object_url=_spotify_url,
        ),
    ]
    return PlatformDefinition(config=config, rules=rules)
