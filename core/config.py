"""Engine configuration as frozen dataclasses.

Everything is loaded once at startup. The redirect URI in particular is
registered with every provider and is never changed at runtime.

Usage::

    settings = EngineSettings.from_env()
    credentials = ClientCredentials.from_env()
"""

import os
from dataclasses import dataclass, field


DEFAULT_REDIRECT_URI = "http://localhost:8000/oauth/callback"
DEFAULT_LANDING_URL = "http://localhost:3001/auth/landing"


# ---------------------------------------------------------------------------
# Per-platform client credentials
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClientCredential:
    """Client id (and optional secret) registered with one provider."""

    client_id: str = ""
    client_secret: str | None = None


@dataclass(frozen=True)
class ClientCredentials:
    """Client registrations for every catalogued platform."""

    youtube: ClientCredential = field(default_factory=ClientCredential)
    spotify: ClientCredential = field(default_factory=ClientCredential)
    twitch: ClientCredential = field(default_factory=ClientCredential)
    twitter: ClientCredential = field(default_factory=ClientCredential)
    discord: ClientCredential = field(default_factory=ClientCredential)

    def for_platform(self, platform: str) -> ClientCredential:
        return getattr(self, platform, ClientCredential())

    @classmethod
    def from_env(cls) -> "ClientCredentials":
        """Read ``{PLATFORM}_CLIENT_ID`` / ``{PLATFORM}_CLIENT_SECRET``.

        Example: SPOTIFY_CLIENT_ID=abc123
        """
        values = {}
        for name in ("youtube", "spotify", "twitch", "twitter", "discord"):
            prefix = name.upper()
            values[name] = ClientCredential(
                client_id=os.getenv(f"{prefix}_CLIENT_ID", ""),
                client_secret=os.getenv(f"{prefix}_CLIENT_SECRET") or None,
            )
        return cls(**values)


# ---------------------------------------------------------------------------
# Engine settings
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EngineSettings:
    """Runtime knobs for the OAuth + sync engine."""

    redirect_uri: str = DEFAULT_REDIRECT_URI
    external_landing_url: str = DEFAULT_LANDING_URL
    caller_id: str = "platform-sync"
    subject_label: str = "You"

    # Timeouts (seconds)
    interactive_timeout: float = 120.0
    token_request_timeout: float = 8.0
    data_request_timeout: float = 20.0

    # Credential lifecycle
    refresh_margin_seconds: int = 300
    pending_state_ttl_seconds: int = 600

    # Observability
    log_level: str = "INFO"
    log_json: bool = False

    database_url: str = "sqlite+aiosqlite:///platform_sync.db"

    # Optional webhook fired after facts are persisted
    notification_webhook_url: str = ""
    notification_secret: str = ""

    @classmethod
    def default(cls) -> "EngineSettings":
        return cls()

    @classmethod
    def from_env(cls, prefix: str = "PLATFORM_SYNC_") -> "EngineSettings":
        """Create settings from environment variables.

        Example: PLATFORM_SYNC_INTERACTIVE_TIMEOUT=60
        """
        overrides: dict = {}
        for name in ("redirect_uri", "external_landing_url", "caller_id", "subject_label",
                     "log_level", "database_url",
                     "notification_webhook_url", "notification_secret"):
            value = os.getenv(f"{prefix}{name.upper()}")
            if value:
                overrides[name] = value
        for name in ("interactive_timeout", "token_request_timeout", "data_request_timeout"):
            value = os.getenv(f"{prefix}{name.upper()}")
            if value:
                overrides[name] = float(value)
        for name in ("refresh_margin_seconds", "pending_state_ttl_seconds"):
            value = os.getenv(f"{prefix}{name.upper()}")
            if value:
                overrides[name] = int(value)
        log_json = os.getenv(f"{prefix}LOG_JSON")
        if log_json:
            overrides["log_json"] = log_json.lower() == "true"

        return cls(**overrides)
