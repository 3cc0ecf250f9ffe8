"""Test the platform registry and the catalogued platform definitions."""
import pytest

from core.errors import PlatformNotSupported
from core.integrations.platform_registry import (
    AuthFlowKind,
    PlatformConfig,
    PlatformDefinition,
    PlatformRegistry,
    ResponseShape,
    get_nested,
)


def test_catalogue_lists_every_platform(registry):
    assert registry.list_platforms() == {"youtube", "spotify", "twitch", "twitter", "discord"}


def test_unknown_platform(registry):
    assert registry.get_config("myspace") is None
    with pytest.raises(PlatformNotSupported):
        registry.require_config("myspace")


def test_credentials_flow_into_configs(registry):
    assert registry.get_config("spotify").client_id == "spotify-client"
    assert registry.get_config("youtube").client_secret == "yt-secret"


def test_flow_kinds(registry):
    spotify = registry.get_config("spotify")
    assert spotify.flow is AuthFlowKind.AUTHORIZATION_CODE
    assert spotify.requires_pkce
    assert spotify.response_type == "code"

    twitch = registry.get_config("twitch")
    assert twitch.flow is AuthFlowKind.IMPLICIT
    assert twitch.response_type == "token"
    assert twitch.requires_client_header
    assert twitch.token_url is None

    assert registry.get_config("discord").flow is AuthFlowKind.EXTERNAL_DELEGATED


def test_items_path_prefers_rule_path(registry):
    assert registry.items_path("spotify", "/me/following?type=artist&limit=50") == "artists.items"
    assert registry.items_path("spotify", "/me/top/tracks?limit=40") == "items"
    assert registry.items_path("twitch", "/channels/followed") == "data"
    assert registry.items_path("discord", "/users/@me/guilds") is None


def test_resolve_items(registry):
    payload = [{"id": "g1"}, {"id": "g2"}]
    assert registry.resolve_items("discord", "/users/@me/guilds", payload) == payload
    assert registry.resolve_items("twitch", "/channels/followed", {"data": "oops"}) == []


def test_matching_rules_by_substring(registry):
    rules = registry.matching_rules("youtube", "/subscriptions?part=snippet&mine=true&maxResults=50")
    assert [r.predicate for r in rules] == ["subscribes_to"]
    assert registry.matching_rules("twitch", "/streams/followed") == []
    assert registry.get_triplet_rules("twitter") == []


def test_get_nested():
    data = {"data": [{"id": "42", "snippet": {"publishedAt": "2024-01-01T00:00:00Z"}}]}
    assert get_nested(data, "data.0.id") == "42"
    assert get_nested(data, "data.0.snippet.publishedAt") == "2024-01-01T00:00:00Z"
    assert get_nested(data, "data.3.id") is None
    assert get_nested(data, "missing.path") is None
    assert get_nested(data, None) is data


def test_url_for_joins_cleanly():
    config = PlatformConfig(
        platform="demo", display_name="Demo", client_id="c", flow=AuthFlowKind.IMPLICIT,
        auth_url="https://demo.example/auth", api_base_url="https://api.demo.example/v1/",
        profile_endpoint="/me", homepage="https://demo.example",
    )
    assert config.url_for("/me") == "https://api.demo.example/v1/me"
    assert ResponseShape.BARE_ARRAY.items_path is None


def test_adding_a_platform_is_data_only():
    config = PlatformConfig(
        platform="demo", display_name="Demo", client_id="c", flow=AuthFlowKind.IMPLICIT,
        auth_url="https://demo.example/auth", api_base_url="https://api.demo.example",
        profile_endpoint="/me", homepage="https://demo.example",
    )
    registry = PlatformRegistry([PlatformDefinition(config=config)])
    assert registry.list_platforms() == {"demo"}
    assert registry.get_triplet_rules("demo") == []
