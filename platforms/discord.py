"""Discord: token obtained by the external landing page, bare-array guild list."""

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


def _profile_url(profile):
    user_id = get_nested(profile, "id")
    return f"https://discord.com/users/{user_id}" if user_id else None


def definition(credential: ClientCredential) -> PlatformDefinition:
    config = PlatformConfig(
        platform="discord",
        display_name="Discord",
        client_id=credential.client_id,
        flow=AuthFlowKind.EXTERNAL_DELEGATED,
        scopes=("identify", "guilds"),
        auth_url="https://discord.com/api/oauth2/authorize",
        token_url="https://discord.com/api/oauth2/token",
        api_base_url="https://discord.com/api",
        profile_endpoint="/users/@me",
        data_endpoints=("/users/@me/guilds",),
        response_shape=ResponseShape.BARE_ARRAY,
        id_field="id",
        homepage="https://discord.com",
        profile_url=_profile_url,
    )
    rules = [
        TripletRule(
            pattern="guilds",
            predicate=predicates.MEMBER_OF,
            extract_object=lambda guild: guild.get("name"),
            extract_object_url=lambda guild: f"https://discord.com/channels/{guild['id']}",
        ),
    ]
    return PlatformDefinition(config=config, rules=rules)
