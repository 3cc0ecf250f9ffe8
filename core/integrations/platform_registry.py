"""
Platform Sync Registry — declarative per-platform behaviour.

A platform is a ``PlatformConfig`` plus an ordered list of ``TripletRule``.
The flow, fetch and extraction algorithms never branch on a platform name;
adding a platform is a pure data change (see ``platforms/``).
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable

from core.errors import PlatformNotSupported


class AuthFlowKind(str, Enum):
    AUTHORIZATION_CODE = "authorization_code"
    IMPLICIT = "implicit"
    EXTERNAL_DELEGATED = "external_delegated"

    @property
    def response_type(self) -> str:
        return "token" if self is AuthFlowKind.IMPLICIT else "code"


class ResponseShape(str, Enum):
    """Where a data endpoint puts its item array."""
    ITEMS = "items"
    DATA = "data"
    BARE_ARRAY = "bare_array"

    @property
    def items_path(self) -> str | None:
        return None if self is ResponseShape.BARE_ARRAY else self.value


def get_nested(data: Any, path: str | None) -> Any:
    """Access nested values via dot notation (``snippet.publishedAt``, ``data.0.id``)."""
    if not path:
        return data
    current = data
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


# ---------------------------------------------------------------------------
# Declarative records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TripletRule:
    """Maps items of matching endpoints to facts with one predicate."""
    pattern: str                                            # endpoint substring
    predicate: str
    extract_object: Callable[[dict[str, Any]], str | None]  # None skips the item
    extract_object_url: Callable[[dict[str, Any]], str | None] | None = None
    extract_from_path: str | None = None                    # e.g. "artists.items"
    extract_identity: Callable[[dict[str, Any]], str | None] | None = None


@dataclass(frozen=True)
class PlatformConfig:
    """Immutable per-platform configuration, loaded once at startup."""
    platform: str
    display_name: str
    client_id: str
    flow: AuthFlowKind
    auth_url: str
    api_base_url: str
    profile_endpoint: str
    homepage: str
    client_secret: str | None = None
    scopes: tuple[str, ...] = ()
    token_url: str | None = None
    data_endpoints: tuple[str, ...] = ()
    response_shape: ResponseShape = ResponseShape.ITEMS
    id_field: str | None = None
    date_field: str | None = None
    requires_client_header: bool = False
    client_header_name: str = "Client-Id"
    requires_pkce: bool = False
    # Profile-derived query parameter appended to every data endpoint
    user_id_path: str | None = None
    user_id_param: str | None = None
    profile_url: Callable[[Any], str | None] | None = None

    @property
    def response_type(self) -> str:
        return self.flow.response_type

    def url_for(self, endpoint: str) -> str:
        return f"{self.api_base_url.rstrip('/')}/{endpoint.lstrip('/')}"


@dataclass
class PlatformDefinition:
    """A config and its rules, as registered together."""
    config: PlatformConfig
    rules: list[TripletRule] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class PlatformRegistry:
    """Read-only catalogue of platform configs and triplet rules."""

    def __init__(self, definitions: Iterable[PlatformDefinition] = ()):
        self._configs: dict[str, PlatformConfig] = {}
        self._rules: dict[str, tuple[TripletRule, ...]] = {}
        for definition in definitions:
            name = definition.config.platform
            self._configs[name] = definition.config
            self._rules[name] = tuple(definition.rules)

    def get_config(self, platform: str) -> PlatformConfig | None:
        return self._configs.get(platform)

    def require_config(self, platform: str) -> PlatformConfig:
        """Like get_config, but an unknown platform is a fatal input error."""
        config = self._configs.get(platform)
        if config is None:
            raise PlatformNotSupported(f"Platform {platform!r} is not supported", platform=platform)
        return config

    def get_triplet_rules(self, platform: str) -> list[TripletRule]:
        return list(self._rules.get(platform, ()))

    def list_platforms(self) -> set[str]:
        return set(self._configs)

    def matching_rules(self, platform: str, endpoint: str) -> list[TripletRule]:
        return [r for r in self._rules.get(platform, ()) if r.pattern in endpoint]

    def items_path(self, platform: str, endpoint: str) -> str | None:
        """Path of the item array for an endpoint.

        A matching rule's nested path wins over the platform's response shape.
        ``None`` means the payload itself is the array.
        """
        for rule in self.matching_rules(platform, endpoint):
            if rule.extract_from_path:
                return rule.extract_from_path
        return self.require_config(platform).response_shape.items_path

    def resolve_items(self, platform: str, endpoint: str, payload: Any) -> list[Any]:
        items = get_nested(payload, self.items_path(platform, endpoint))
        return items if isinstance(items, list) else []
