"""Security utilities and dependencies."""

from typing import Annotated, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from facial_signon.core.exceptions import AuthError

# HTTPBearer security scheme for extracting Bearer tokens
bearer_scheme = HTTPBearer(auto_error=False)


async def get_bearer_token(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> str:
    """Extract and validate Bearer token from Authorization header.

    Args:
        credentials: HTTP authorization credentials from FastAPI

    Returns:
        str: The extracted bearer token

    Raises:
        AuthError: If credentials are missing or invalid

    Example:
        @router.post("/auth/token/revoke")
        async def revoke(token: BearerToken):
            # Use token safely
            pass
    """
    if not credentials:
        raise AuthError("Authorization header is required", code="missing_credentials")

    if credentials.scheme.lower() != "bearer":
        raise AuthError("Invalid authentication scheme. Expected: Bearer", code="missing_credentials")

    return credentials.credentials


def bearer_from_header(authorization: Optional[str]) -> Optional[str]:
    """Return the token of an ``Authorization: Bearer`` header value, if any."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


# Type alias for bearer token dependency
BearerToken = Annotated[str, Depends(get_bearer_token)]
