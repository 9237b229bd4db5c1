"""Pydantic response models."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class PushNotificationResponse(BaseModel):
    """Response for login initiation; the token itself stays in the session."""

    success: bool = True
    message: str = Field(default="Push notification sent successfully")
    expires_in: int = Field(..., description="Seconds until the verification token expires")


class VerificationTokenResponse(BaseModel):
    """Session-scoped verification token."""

    success: bool = True
    token: str
    expires_in: int


class RelayCredentialResponse(BaseModel):
    """Relay credential for browser WebSocket connections."""

    success: bool = True
    token: str
    expires_in: int
    expires_at: int


class SiteCredentialsResponse(BaseModel):
    """Public routing information for the relay."""

    channel_prefix: Optional[str] = None
    server_url: str


class LoginResponse(BaseModel):
    """Response for a successful verified login."""

    success: bool = True
    message: str = "Login successful"
    redirect_url: str


class SessionUser(BaseModel):
    """User summary returned by the sessions API."""

    id: int
    email: str
    client_id: Optional[str] = None


class SessionResponse(BaseModel):
    """Response for the sessions API."""

    success: bool = True
    message: Optional[str] = None
    user: Optional[SessionUser] = None


class MessageResponse(BaseModel):
    """Plain success message."""

    success: bool = True
    message: str


class VendorPassthrough(BaseModel):
    """Axiam JSON returned as-is to the browser."""

    model_config = {"extra": "allow"}

    success: bool = True
    data: Optional[Dict[str, Any]] = None
    message: Optional[str] = None
    user_message: Optional[str] = None
    code: Optional[Any] = None
