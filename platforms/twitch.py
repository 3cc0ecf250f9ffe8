"""Twitch: implicit flow, Client-Id header, user_id appended to data calls."""

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
    login = get_nested(profile, "data.0.login")
    return f"https://www.twitch.tv/{login}" if login else None


def definition(credential: ClientCredential) -> PlatformDefinition:
    config = PlatformConfig(
        platform="twitch",
        display_name="Twitch",
        client_id=credential.client_id,
        flow=AuthFlowKind.IMPLICIT,
        scopes=("user:read:follows", "user:read:subscriptions", "user:read:email"),
        auth_url="https://id.twitch.tv/oauth2/authorize",
        api_base_url="https://api.twitch.tv/helix",
        profile_endpoint="/users",
        data_endpoints=("/channels/followed", "/streams/followed"),
        response_shape=ResponseShape.DATA,
        id_field="broadcaster_id",
        requires_client_header=True,
        user_id_path="data.0.id",
        user_id_param="user_id",
        homepage="https://www.twitch.tv",
        profile_url=_channel_url,
    )
    rules = [
        TripletRule(
            pattern="channels/followed",
            predicate=predicates.FOLLOWS,
            extract_object=lambda item: item["broadcaster_name"],
            extract_object_url=lambda item: f"https://www.twitch.tv/{item['broadcaster_login']}",
        ),
    ]
    return PlatformDefinition(config=config, rules=rules)
