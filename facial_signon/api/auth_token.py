"""Relay credential endpoints."""

from fastapi import APIRouter, status

from facial_signon.core.exceptions import TransientNetworkError
from facial_signon.core.guards import guard_condition
from facial_signon.core.logging import get_logger
from facial_signon.core.security import BearerToken
from facial_signon.dependencies import CacheDep, RelayTokenDep, RevocationDep
from facial_signon.models.responses import MessageResponse, RelayCredentialResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["relay-credentials"])


@router.get(
    "/token",
    response_model=RelayCredentialResponse,
    status_code=status.HTTP_200_OK,
    summary="Issue relay credential",
    description="Issues a short-lived credential the browser presents when subscribing to the relay.",
    responses={
        200: {
            "description": "Credential issued",
            "content": {
                "application/json": {
                    "example": {
                        "success": True,
                        "token": "eyJhbGciOiJIUzI1NiIsInR5cCI6IkpXVCJ9...",
                        "expires_in": 3600,
                        "expires_at": 1767225600,
                    }
                }
            },
        },
        401: {
            "description": "Credentials for this site are revoked",
            "content": {
                "application/json": {
                    "example": {
                        "success": False,
                        "error": "Failed to authenticate with the relay",
                        "code": "site_revoked",
                        "vendor_code": None,
                    }
                }
            },
        },
        503: {"description": "Revocation store unreachable"},
    },
)
async def issue_relay_token(
    relay_tokens: RelayTokenDep,
    cache: CacheDep,
) -> RelayCredentialResponse:
    """Issue a relay credential for this site.

    Credentials are only issued while the revocation store answers.
    """
    reachable = await cache.ping()
    with guard_condition(reachable, TransientNetworkError("Revocation store unreachable")):
        credential = await relay_tokens.issue()

    return RelayCredentialResponse(
        token=credential.token,
        expires_in=credential.expires_in,
        expires_at=credential.expires_at,
    )


@router.post(
    "/token/revoke",
    response_model=MessageResponse,
    status_code=status.HTTP_200_OK,
    summary="Revoke relay credential",
)
async def revoke_relay_token(
    token: BearerToken,
    relay_tokens: RelayTokenDep,
    revocation: RevocationDep,
) -> MessageResponse:
    """Revoke the credential presented in the Authorization header."""
    identity = await relay_tokens.verify(token)
    await revocation.revoke_token(token, reason="client_revocation")

    logger.info("relay_token_revoked_by_client", site_id=identity.site_id)

    return MessageResponse(message="Credential revoked")
