"""
Platform Sync error taxonomy.

Authentication-phase errors are fatal for the attempt and always surface to
the caller with a human-readable reason. Data-phase failures (one endpoint,
one item, one notification) are logged where they happen and never raised.
"""
from __future__ import annotations
from typing import Any


class SyncEngineError(Exception):
    """Base class for every error the engine raises on purpose."""

    user_message: str = "Something went wrong while talking to the platform."

    def __init__(self, message: str, *, platform: str | None = None, **details: Any):
        super().__init__(message)
        self.platform = platform
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": str(self),
            "user_message": self.user_message,
            "platform": self.platform,
        }


class ReconnectRequired(SyncEngineError):
    """Errors the user can only fix by connecting the account again."""

    user_message = "Please reconnect your account."


# --- Input ---

class PlatformNotSupported(SyncEngineError):
    user_message = "This platform is not supported."


class OperationInProgress(SyncEngineError):
    user_message = "Another operation is already running for this platform."


# --- Authorization protocol ---

class InvalidOrExpiredState(ReconnectRequired):
    pass


class CallbackMalformed(ReconnectRequired):
    pass


class PKCEVerifierMissing(ReconnectRequired):
    pass


class TokenExchangeFailed(ReconnectRequired):
    """Token endpoint refused the code. Codes are single-use, so never retried."""

    def __init__(
        self,
        message: str,
        *,
        platform: str | None = None,
        status_code: int | None = None,
        body: str | None = None,
    ):
        super().__init__(message, platform=platform, status_code=status_code)
        self.status_code = status_code
        self.body = body


class UserCancelled(SyncEngineError):
    user_message = "Authorization was cancelled."


class AuthorizationTimeout(SyncEngineError):
    user_message = "Authorization took too long. Please try again."


# --- Credentials ---

class NoCredential(ReconnectRequired):
    pass


class RefreshFailed(ReconnectRequired):
    pass


# --- Data phase ---

class ProfileFetchFailed(SyncEngineError):
    user_message = "Could not load your profile from the platform."


class TransportError(SyncEngineError):
    """Network-level failure raised by the HTTP port."""

    user_message = "The platform could not be reached."
