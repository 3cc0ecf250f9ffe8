"""
Platform Sync records.

Plain dataclasses with ``to_dict`` / ``from_dict`` so they round-trip
through any JSON key-value backend. All instants are timezone-aware UTC.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_instant(value: Any) -> datetime | None:
    """Parse an ISO-8601 string (``Z`` suffix allowed) into an aware datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------

@dataclass
class UserToken:
    """Platform-scoped credential. One per platform, overwritten on refresh."""
    access_token: str
    platform: str
    refresh_token: str | None = None
    expires_at: datetime | None = None
    user_id: str | None = None

    @classmethod
    def from_token_response(
        cls,
        platform: str,
        data: dict[str, Any],
        previous: "UserToken | None" = None,
    ) -> "UserToken":
        """Build from a token-endpoint JSON body (access_token, refresh_token, expires_in)."""
        expires_in = data.get("expires_in")
        expires_at = utc_now() + timedelta(seconds=int(expires_in)) if expires_in else None
        refresh_token = data.get("refresh_token")
        if refresh_token is None and previous is not None:
            refresh_token = previous.refresh_token
        return cls(
            access_token=data["access_token"],
            platform=platform,
            refresh_token=refresh_token,
            expires_at=expires_at,
            user_id=previous.user_id if previous else None,
        )

    def is_expired(self, margin: timedelta = timedelta(0)) -> bool:
        if self.expires_at is None:
            return False
        return utc_now() >= (self.expires_at - margin)

    def to_dict(self) -> dict[str, Any]:
        return {
            "access_token": self.access_token,
            "platform": self.platform,
            "refresh_token": self.refresh_token,
            "expires_at": _iso(self.expires_at),
            "user_id": self.user_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UserToken":
        return cls(
            access_token=data["access_token"],
            platform=data["platform"],
            refresh_token=data.get("refresh_token"),
            expires_at=parse_instant(data.get("expires_at")),
            user_id=data.get("user_id"),
        )


@dataclass
class PendingAuthState:
    """One-time record linking an authorization redirect back to its request."""
    state: str
    platform: str
    created_at: datetime = field(default_factory=utc_now)
    code_verifier: str | None = None

    def is_expired(self, ttl_seconds: int) -> bool:
        return utc_now() >= self.created_at + timedelta(seconds=ttl_seconds)

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state,
            "platform": self.platform,
            "created_at": self.created_at.isoformat(),
            "code_verifier": self.code_verifier,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PendingAuthState":
        return cls(
            state=data["state"],
            platform=data["platform"],
            created_at=parse_instant(data["created_at"]) or utc_now(),
            code_verifier=data.get("code_verifier"),
        )


# ---------------------------------------------------------------------------
# Sync cursor
# ---------------------------------------------------------------------------

@dataclass
class SyncInfo:
    """Incremental-sync cursor for one platform."""
    platform: str
    last_sync_at: datetime
    last_item_ids: list[str] | None = None
    total_facts: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "platform": self.platform,
            "last_sync_at": self.last_sync_at.isoformat(),
            "last_item_ids": self.last_item_ids,
            "total_facts": self.total_facts,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncInfo":
        return cls(
            platform=data["platform"],
            last_sync_at=parse_instant(data["last_sync_at"]) or utc_now(),
            last_item_ids=data.get("last_item_ids"),
            total_facts=int(data.get("total_facts", 0)),
        )


# ---------------------------------------------------------------------------
# Facts
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Triplet:
    """Subject-predicate-object fact derived from one raw item."""
    subject: str
    predicate: str
    object: str
    object_url: str | None = None
    dedup_key: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "subject": self.subject,
            "predicate": self.predicate,
            "object": self.object,
            "object_url": self.object_url,
            "dedup_key": self.dedup_key,
        }


@dataclass
class UserData:
    """Everything one fetch produced for a platform."""
    platform: str
    profile: Any = None
    data: dict[str, Any] = field(default_factory=dict)
    triplets: list[Triplet] = field(default_factory=list)
    failed_endpoints: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------

@dataclass
class AuthResult:
    """Outcome of an authorization flow."""
    platform: str
    success: bool = True
    auth_url: str | None = None
    fact_count: int = 0
    sync_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "platform": self.platform,
            "success": self.success,
            "auth_url": self.auth_url,
            "fact_count": self.fact_count,
            "sync_error": self.sync_error,
        }


@dataclass
class SyncResult:
    """Outcome of one sync. ``failed_endpoints`` exposes partial failure."""
    platform: str
    fact_count: int = 0
    extracted_count: int = 0
    failed_endpoints: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "platform": self.platform,
            "fact_count": self.fact_count,
            "extracted_count": self.extracted_count,
            "failed_endpoints": self.failed_endpoints,
        }
