"""Login initiation: push a verification prompt and remember the pending token."""

import re
import time
from typing import Optional

from facial_signon.core.exceptions import (
    IdentityMismatchError,
    NotEnabledError,
    NotFoundError,
    ReplayError,
    ValidationError,
)
from facial_signon.core.logging import get_logger, redact
from facial_signon.db.repositories.users import UserRepository
from facial_signon.models.domain import PendingVerification
from facial_signon.services.token_cache import (
    TokenCache,
    verification_email_key,
    verification_token_key,
)
from facial_signon.services.vendor import VendorClient

logger = get_logger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def validate_email(email: Optional[str]) -> str:
    """Return the trimmed email or raise ValidationError."""
    if email is None or not email.strip():
        raise ValidationError(
            "Email is required",
            {"field": "email"},
            user_message="Please enter your email address",
        )
    email = email.strip()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError(
            "Invalid email format",
            {"field": "email"},
            user_message="Please enter a valid email address",
        )
    return email


class LoginInitiationService:
    """Starts a facial sign-on attempt for a local user."""

    def __init__(
        self,
        users: UserRepository,
        vendor: VendorClient,
        cache: TokenCache,
        site_id: Optional[str],
        ttl: int = 300,
    ):
        self.users = users
        self.vendor = vendor
        self.cache = cache
        self.site_id = site_id
        self.ttl = ttl

    async def initiate(self, email: Optional[str]) -> PendingVerification:
        """Send a push notification for ``email`` and cache the verification token.

        Raises:
            ValidationError: If the email is blank or malformed
            NotFoundError: If no local account uses the email
            NotEnabledError: If the account has no bound Axiam client id
        """
        email = validate_email(email)

        user = await self.users.get_by_email(email)
        if user is None:
            logger.warning("login_initiation_rejected", reason="user_not_found")
            raise NotFoundError(
                "User not found",
                code="user_not_found",
                user_message="No account found with this email address.",
            )
        if not user.facial_enabled:
            logger.warning("login_initiation_rejected", reason="not_enabled", user_id=user.id)
            raise NotEnabledError()

        result = await self.vendor.push_notification(user.vendor_client_id)

        now = int(time.time())
        pending = PendingVerification(
            verification_token=result.verification_token,
            email=user.email,
            client_id=user.vendor_client_id,
            user_id=user.id,
            site_id=self.site_id,
            created_at=now,
            expires_at=now + self.ttl,
        )
        await self.remember(pending)

        logger.info(
            "login_initiated",
            user_id=user.id,
            verification_token=redact(pending.verification_token),
        )
        return pending

    async def remember(self, pending: PendingVerification) -> None:
        """Cache a pending verification by token and, when known, by email."""
        await self.cache.write(
            verification_token_key(pending.verification_token),
            {
                "user_id": pending.user_id,
                "email": pending.email,
                "client_id": pending.client_id,
                "site_id": pending.site_id,
                "created_at": pending.created_at,
                "expires_at": pending.expires_at,
            },
            ttl=self.ttl,
        )
        if pending.email:
            await self.cache.write(
                verification_email_key(pending.email),
                {
                    "user_id": pending.user_id,
                    "client_id": pending.client_id,
                    "verification_token": pending.verification_token,
                    "site_id": pending.site_id,
                    "created_at": pending.created_at,
                    "expires_at": pending.expires_at,
                },
                ttl=self.ttl,
            )

    async def remember_token(self, verification_token: str, client_id: str) -> None:
        """Cache a token obtained through the client-id API, which carries no email."""
        now = int(time.time())
        await self.cache.write(
            verification_token_key(verification_token),
            {
                "user_id": None,
                "email": None,
                "client_id": client_id,
                "site_id": self.site_id,
                "created_at": now,
                "expires_at": now + self.ttl,
            },
            ttl=self.ttl,
        )

    async def redeem(
        self,
        verification_token: Optional[str],
        email: Optional[str],
        client_id: Optional[str],
    ) -> Optional[dict]:
        """Consume the pending verification a session is being created for.

        With a token, the token's entry must still exist. Without one, the
        entry cached for ``email`` is used when present. Entries are removed
        with an atomic take, so a verification is redeemable exactly once; an
        entry that fails the match below is consumed all the same.

        Returns:
            The pending verification, or None when neither a token nor an
            entry for the email exists

        Raises:
            ReplayError: If the token was already redeemed, expired or never issued
            IdentityMismatchError: If the entry belongs to another email or client id
        """
        if verification_token:
            pending = await self.cache.take(verification_token_key(verification_token))
            if not isinstance(pending, dict):
                logger.warning(
                    "verification_redeem_rejected",
                    verification_token=redact(verification_token),
                )
                raise ReplayError("Verification token already used, expired or never issued")
        elif email:
            pending = await self.cache.take(verification_email_key(email))
            if not isinstance(pending, dict):
                return None
            verification_token = pending.get("verification_token")
        else:
            return None

        leftovers = []
        if verification_token:
            leftovers.append(verification_token_key(verification_token))
        if pending.get("email"):
            leftovers.append(verification_email_key(pending["email"]))
        await self.cache.delete(*leftovers)

        pending_email = pending.get("email")
        if pending_email and email and pending_email.strip().lower() != email.strip().lower():
            logger.error("verification_email_mismatch", verification_token=redact(verification_token))
            raise IdentityMismatchError("Verification token was issued for another email")

        pending_client = pending.get("client_id")
        if pending_client and client_id and pending_client != client_id:
            logger.error("verification_client_mismatch", verification_token=redact(verification_token))
            raise IdentityMismatchError("Verification token was issued for another client")

        logger.info("verification_redeemed", verification_token=redact(verification_token))
        return {**pending, "verification_token": verification_token}
