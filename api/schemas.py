"""Request bodies for the OAuth routes."""

from typing import Optional

from pydantic import BaseModel, Field


class OAuthMessage(BaseModel):
    """A UI message, routed by ``type`` (see ``MessageType``)."""
    type: str
    platform: Optional[str] = None
    code: Optional[str] = None
    state: Optional[str] = None
    accessToken: Optional[str] = None
    refreshToken: Optional[str] = None
    expiresIn: Optional[int] = Field(default=None, ge=0)


class RedirectCapture(BaseModel):
    url: str


class ExternalToken(BaseModel):
    """Posted by the external landing page once the provider flow completed."""
    platform: str
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = Field(default=None, ge=0)


class CancelAuthorization(BaseModel):
    """Sent by the UI when the user closes the provider window. No state cancels every waiting flow."""
    state: Optional[str] = None
