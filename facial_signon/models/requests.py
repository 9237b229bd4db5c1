"""Pydantic request models."""

from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EmailRequest(BaseModel):
    """Request carrying only an email address."""

    email: Optional[str] = Field(default=None, description="User email address")


class LoginInitiationRequest(BaseModel):
    """Login initiation request; widgets send the email under different names."""

    email: Optional[str] = None
    user_email: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    def resolved_email(self) -> Optional[str]:
        if self.email:
            return self.email
        if self.user_email:
            return self.user_email
        if self.data and isinstance(self.data.get("email"), str):
            return self.data["email"]
        return None


class ClientIdRequest(BaseModel):
    """Request carrying only an Axiam client id."""

    client_id: Optional[str] = Field(default=None, description="Axiam client id")


class SessionRequest(BaseModel):
    """Session creation request sent by the browser after a verified event."""

    model_config = ConfigDict(extra="ignore")

    client_id: Optional[str] = None
    email: Optional[str] = None
    client_session_token: Optional[str] = None
    verification_token: Optional[str] = None
    # Legacy proof fields
    axiam_uid: Optional[str] = None
    verified: Optional[Union[bool, str]] = None
    signature: Optional[str] = None
    verification_data: Optional[Dict[str, Any]] = None
    data: Optional[Dict[str, Any]] = None

    @field_validator("client_id", "email", "client_session_token", "verification_token", "axiam_uid")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat empty strings as absent."""
        if v is not None and not v.strip():
            return None
        return v


class ApiSessionRequest(SessionRequest):
    """Session creation request for the JSON API."""

    login_method: Optional[str] = None
