"""Pydantic models for request/response validation."""

from facial_signon.models.api import ErrorResponse, SuccessResponse
from facial_signon.models.domain import (
    PendingVerification,
    PushNotificationResult,
    RelayCredential,
    RelayEvent,
    SiteIdentity,
    UserAccount,
    VendorAuthToken,
)
from facial_signon.models.requests import (
    ApiSessionRequest,
    ClientIdRequest,
    EmailRequest,
    LoginInitiationRequest,
    SessionRequest,
)
from facial_signon.models.responses import (
    LoginResponse,
    MessageResponse,
    PushNotificationResponse,
    RelayCredentialResponse,
    SessionResponse,
    SessionUser,
    SiteCredentialsResponse,
    VendorPassthrough,
    VerificationTokenResponse,
)

__all__ = [
    # Request models
    "ApiSessionRequest",
    "ClientIdRequest",
    "EmailRequest",
    "LoginInitiationRequest",
    "SessionRequest",
    # Response models
    "ErrorResponse",
    "LoginResponse",
    "MessageResponse",
    "PushNotificationResponse",
    "RelayCredentialResponse",
    "SessionResponse",
    "SessionUser",
    "SiteCredentialsResponse",
    "SuccessResponse",
    "VendorPassthrough",
    "VerificationTokenResponse",
    # Domain models
    "PendingVerification",
    "PushNotificationResult",
    "RelayCredential",
    "RelayEvent",
    "SiteIdentity",
    "UserAccount",
    "VendorAuthToken",
]
