"""Custom exception classes."""

from typing import Optional


class SignOnError(Exception):
    """Base exception for the facial sign-on service.

    ``message`` is written to the logs and may carry vendor detail.
    ``user_message`` is the only text that reaches the browser.
    """

    status_code = 500
    default_user_message = "Something went wrong. Please try again."

    def __init__(
        self,
        message: str,
        code: str = "error",
        details: Optional[dict] = None,
        user_message: Optional[str] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        self.user_message = user_message or self.default_user_message
        super().__init__(message)

    @property
    def vendor_code(self) -> Optional[int]:
        return self.details.get("vendor_code")


class ValidationError(SignOnError):
    """Exception for bad or missing input."""

    status_code = 400
    default_user_message = "Invalid request."

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        user_message: Optional[str] = None,
        code: str = "validation_error",
    ):
        super().__init__(message, code, details, user_message or message)


class NotFoundError(SignOnError):
    """Exception for an absent user, client or token."""

    status_code = 404
    default_user_message = "Not found."

    def __init__(
        self,
        message: str,
        code: str = "not_found",
        details: Optional[dict] = None,
        user_message: Optional[str] = None,
    ):
        super().__init__(message, code, details, user_message)


class NotEnabledError(SignOnError):
    """Exception for a user that has not enabled facial sign-on."""

    status_code = 404
    default_user_message = "Facial sign-on is not enabled for this account."

    def __init__(self, message: str = "User has not enabled facial sign in"):
        super().__init__(message, "not_enabled")


class ForbiddenError(SignOnError):
    """Exception for operations the vendor or local policy refuses."""

    status_code = 403
    default_user_message = "This action is not allowed."

    def __init__(
        self,
        message: str,
        code: str = "forbidden",
        details: Optional[dict] = None,
        user_message: Optional[str] = None,
    ):
        super().__init__(message, code, details, user_message)


class AuthError(SignOnError):
    """Exception for rejected credentials."""

    status_code = 401
    default_user_message = "Authentication failed."

    def __init__(
        self,
        message: str = "Unauthorized",
        code: str = "auth_error",
        details: Optional[dict] = None,
        user_message: Optional[str] = None,
    ):
        super().__init__(message, code, details, user_message)


class ReplayError(SignOnError):
    """Exception for a one-time token presented twice."""

    status_code = 401
    default_user_message = "Session token has already been used."

    def __init__(self, message: str = "Session token has already been used"):
        super().__init__(message, "replay_detected")


class IdentityMismatchError(SignOnError):
    """Exception for a presented identity that conflicts with the bound one."""

    status_code = 403
    default_user_message = "Invalid login credentials."

    def __init__(self, message: str, code: str = "identity_mismatch"):
        super().__init__(message, code)


class RateLimitError(SignOnError):
    """Exception for vendor-reported throttling."""

    status_code = 429
    default_user_message = "Too many attempts. Please wait and try again."

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, "rate_limited", details)


class UpstreamError(SignOnError):
    """Exception for generic vendor failures."""

    status_code = 502
    default_user_message = "The verification service returned an error. Please try again."

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        user_message: Optional[str] = None,
    ):
        super().__init__(message, "upstream_error", details, user_message)


class TransientNetworkError(SignOnError):
    """Exception for timeouts and unreachable backends."""

    status_code = 503
    default_user_message = "Service temporarily unavailable. Please try again."

    def __init__(self, message: str):
        super().__init__(message, "network_error")
