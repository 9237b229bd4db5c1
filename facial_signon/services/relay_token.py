"""Relay credential issuing and verification."""

import time
import uuid

import jwt

from facial_signon.core.exceptions import AuthError
from facial_signon.core.logging import get_logger
from facial_signon.models.domain import RelayCredential, SiteIdentity
from facial_signon.services.revocation import RevocationService

logger = get_logger(__name__)

ALGORITHM = "HS256"
TOKEN_TYPE = "relay"


class RelayTokenService:
    """Service for issuing and verifying JWT relay credentials."""

    def __init__(
        self,
        secret_key: str,
        site_id: str,
        revocation: RevocationService,
        expires_in: int = 3600,
    ):
        """Initialize relay token service.

        Args:
            secret_key: Secret key for signing JWT tokens
            site_id: Tenant identifier embedded in every credential
            revocation: Revocation list consulted on verification
            expires_in: Credential lifetime in seconds
        """
        self.secret_key = secret_key
        self.site_id = site_id
        self.revocation = revocation
        self.expires_in = expires_in

    async def issue(self) -> RelayCredential:
        """Issue a credential for this site.

        Raises:
            AuthError: If the site's credentials are currently revoked
        """
        if await self.revocation.site_revoked(self.site_id):
            logger.warning("relay_token_refused", site_id=self.site_id, reason="site_revoked")
            raise AuthError(
                f"Relay credentials for site {self.site_id} are revoked",
                code="site_revoked",
                user_message="Failed to authenticate with the relay",
            )

        now = int(time.time())
        payload = {
            "site_id": self.site_id,
            "typ": TOKEN_TYPE,
            "jti": uuid.uuid4().hex,
            "iat": now,
            "exp": now + self.expires_in,
        }
        token = jwt.encode(payload, self.secret_key, algorithm=ALGORITHM)

        logger.info("relay_token_issued", site_id=self.site_id, expires_in=self.expires_in)

        return RelayCredential(token=token, expires_in=self.expires_in, expires_at=payload["exp"])

    async def verify(self, token: str) -> SiteIdentity:
        """Verify a credential and return the tenant it was issued for.

        Raises:
            AuthError: If the token is expired, forged, revoked or lacks a site id
        """
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise AuthError("Relay credential has expired", code="credential_expired")
        except jwt.InvalidTokenError as e:
            raise AuthError(f"Invalid relay credential: {str(e)}", code="invalid_credential")

        site_id = payload.get("site_id")
        if not site_id:
            raise AuthError("Missing site_id in relay credential", code="invalid_credential")

        if await self.revocation.is_revoked(token):
            raise AuthError("Relay credential has been revoked", code="credential_revoked")

        if await self.revocation.site_revoked(str(site_id)):
            raise AuthError("Relay credentials for this site are revoked", code="site_revoked")

        return SiteIdentity(site_id=str(site_id), authenticated=True)
