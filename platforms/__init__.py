"""Platform catalogue.

Each module contributes one ``definition(credential)``. Adding a platform
means adding a module here and listing it in ``CATALOGUE``.
"""
from core.config import ClientCredentials
from core.integrations.platform_registry import PlatformRegistry

from platforms import discord, spotify, twitch, twitter, youtube

CATALOGUE = {
    "youtube": youtube.definition,
    "spotify": spotify.definition,
    "twitch": twitch.definition,
    "twitter": twitter.definition,
    "discord": discord.definition,
}


def build_registry(credentials: ClientCredentials | None = None) -> PlatformRegistry:
    """Registry with every catalogued platform, using the given client registrations."""
    credentials = credentials or ClientCredentials.from_env()
    return PlatformRegistry(
        factory(credentials.for_platform(name)) for name, factory in CATALOGUE.items()
    )
