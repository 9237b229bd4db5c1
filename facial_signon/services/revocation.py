"""Redis-backed revocation list for relay credentials."""

import hashlib
import time
from typing import Optional

import jwt

from facial_signon.core.exceptions import TransientNetworkError
from facial_signon.core.logging import get_logger
from facial_signon.services.token_cache import TokenCache

logger = get_logger(__name__)

DEFAULT_REVOCATION_TTL = 7200


def token_revocation_key(token: str) -> str:
    return f"jwt_revocation:token:{hashlib.sha256(token.encode()).hexdigest()}"


def site_revocation_key(site_id: str) -> str:
    return f"jwt_revocation:site:{site_id}"


class RevocationService:
    """Immediate invalidation of relay credentials.

    Lookups fail open: if the store is unreachable a credential is treated as
    not revoked and the failure is logged.
    """

    def __init__(self, cache: TokenCache):
        self.cache = cache

    async def revoke_token(self, token: str, reason: str = "manual_revocation") -> bool:
        """Revoke a credential for the rest of its lifetime.

        Returns:
            True if the credential was recorded as revoked
        """
        if not token:
            return False

        try:
            payload = jwt.decode(token, options={"verify_signature": False})
        except jwt.InvalidTokenError:
            logger.warning("revoke_token_undecodable")
            return False

        exp = payload.get("exp")
        ttl = int(exp) - int(time.time()) if exp is not None else DEFAULT_REVOCATION_TTL
        if ttl <= 0:
            logger.info("revoke_token_already_expired")
            return False

        await self.cache.write(
            token_revocation_key(token),
            {"site_id": payload.get("site_id"), "revoked_at": int(time.time()), "reason": reason},
            ttl=ttl,
        )
        logger.info("token_revoked", site_id=payload.get("site_id"), reason=reason, ttl=ttl)
        return True

    async def is_revoked(self, token: str) -> bool:
        if not token:
            return False
        try:
            return await self.cache.read(token_revocation_key(token)) is not None
        except TransientNetworkError as e:
            logger.error("revocation_check_failed", error=e.message)
            return False

    async def revocation_details(self, token: str) -> Optional[dict]:
        if not token:
            return None
        try:
            details = await self.cache.read(token_revocation_key(token))
        except TransientNetworkError as e:
            logger.error("revocation_details_failed", error=e.message)
            return None
        return details if isinstance(details, dict) else None

    async def revoke_all_for_site(self, site_id: str, reason: str = "site_compromised") -> None:
        """Revoke every credential issued for ``site_id`` during the revocation window."""
        logger.warning("site_revocation", site_id=site_id, reason=reason)
        await self.cache.write(
            site_revocation_key(site_id),
            {"revoked_at": int(time.time()), "reason": reason},
            ttl=DEFAULT_REVOCATION_TTL,
        )

    async def site_revoked(self, site_id: Optional[str]) -> bool:
        if not site_id:
            return False
        try:
            return await self.cache.read(site_revocation_key(site_id)) is not None
        except TransientNetworkError as e:
            logger.error("site_revocation_check_failed", error=e.message)
            return False
