"""Domain models."""

from datetime import datetime
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

RelayStatus = Literal["pending", "processing", "verified", "success", "failed", "error", "timeout"]


class UserAccount(BaseModel):
    """Local user account."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    vendor_client_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def facial_enabled(self) -> bool:
        return bool(self.vendor_client_id)


class VendorAuthToken(BaseModel):
    """Bearer token issued by Axiam for server-to-server calls."""

    token: str
    expires_at: int

    def expires_in(self, now: int) -> int:
        return max(0, self.expires_at - now)


class PushNotificationResult(BaseModel):
    """Outcome of a push notification request."""

    verification_token: str
    payload: Dict[str, Any]


class PendingVerification(BaseModel):
    """A verification attempt waiting for the mobile device."""

    verification_token: str
    email: str
    client_id: str
    user_id: int
    site_id: Optional[str] = None
    created_at: int
    expires_at: int


class SiteIdentity(BaseModel):
    """Tenant identity of a relay subscriber.

    ``site_id`` is None for the anonymous tenant (no credential presented).
    """

    site_id: Optional[str] = None
    authenticated: bool = False

    @classmethod
    def anonymous(cls) -> "SiteIdentity":
        return cls(site_id=None, authenticated=False)


class RelayCredential(BaseModel):
    """Short-lived credential for relay connections."""

    token: str
    expires_in: int
    expires_at: int


class RelayEvent(BaseModel):
    """Status update published to a relay channel."""

    model_config = ConfigDict(extra="allow")

    status: RelayStatus
    message: Optional[str] = None
    client_id: Optional[str] = None
    redirect_url: Optional[str] = None
    client_session_token: Optional[str] = None
    timestamp: Optional[str] = Field(default=None, description="ISO 8601 publish time")
