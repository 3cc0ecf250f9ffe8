"""Twitter/X: authorization code + PKCE. Free tier exposes the profile only."""

from core.config import ClientCredential
from core.integrations.platform_registry import (
    AuthFlowKind,
    PlatformConfig,
    PlatformDefinition,
    ResponseShape,
    get_nested,
)


def _profile_url(profile):
    username = get_nested(profile, "data.username")
    return f"https://x.com/{username}" if username else None


def definition(credential: ClientCredential) -> PlatformDefinition:
    config = PlatformConfig(
        platform="twitter",
        display_name="Twitter/X",
        client_id=credential.client_id,
        client_secret=credential.client_secret,
        flow=AuthFlowKind.AUTHORIZATION_CODE,
        requires_pkce=True,
        scopes=("users.read", "tweet.read"),
        auth_url="https://twitter.com/i/oauth2/authorize",
        token_url="https://api.twitter.com/2/oauth2/token",
        api_base_url="https://api.twitter.com/2",
        profile_endpoint="/users/me?user.fields=id,name,username,description,profile_image_url,public_metrics",
        response_shape=ResponseShape.DATA,
        id_field="id",
        homepage="https://x.com",
        profile_url=_profile_url,
    )
    return PlatformDefinition(config=config, rules=[])
