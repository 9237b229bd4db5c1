"""Session creation after the relay reports a verified facial sign-on.

Two strategies exist. ``hardened`` (the default) requires a one-time client
session token, claims it before doing anything else and never accepts the
weaker proofs. ``legacy`` accepts any plausible verification artifact and
exists only for old widget integrations; it must be enabled explicitly.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError

from facial_signon.config import SignOnSettings
from facial_signon.core.exceptions import (
    AuthError,
    ForbiddenError,
    IdentityMismatchError,
    NotFoundError,
    ValidationError,
)
from facial_signon.core.logging import get_logger
from facial_signon.db.repositories.users import UserRepository
from facial_signon.models.domain import UserAccount
from facial_signon.models.requests import SessionRequest
from facial_signon.services.login import LoginInitiationService
from facial_signon.services.replay_guard import ReplayGuard
from facial_signon.services.vendor import VendorClient

logger = get_logger(__name__)


@dataclass(frozen=True)
class SessionOutcome:
    """A user cleared for sign-in."""

    user: UserAccount
    client_id: str
    redirect_url: str
    strategy: str


def has_legacy_proof(request: SessionRequest) -> bool:
    """True if the request carries any of the legacy verification artifacts."""
    verified = request.verified is True or (
        isinstance(request.verified, str) and request.verified.lower() == "true"
    )
    status = (request.verification_data or {}).get("status")
    return bool(verified or request.signature or request.verification_token or status == "verified")


class SessionStrategy(ABC):
    """Common user resolution and client-id binding rules."""

    name: str

    def __init__(
        self,
        users: UserRepository,
        replay_guard: ReplayGuard,
        login: LoginInitiationService,
        vendor: VendorClient,
        settings: SignOnSettings,
    ):
        self.users = users
        self.replay_guard = replay_guard
        self.login = login
        self.vendor = vendor
        self.settings = settings

    @abstractmethod
    async def create(self, request: SessionRequest) -> SessionOutcome:
        """Validate the request and return the user to sign in."""

    async def resolve_user(self, email: Optional[str], client_id: Optional[str]) -> UserAccount:
        """Find the local user by email, falling back to the bound client id."""
        user = None
        if email:
            user = await self.users.get_by_email(email.strip())
        elif client_id:
            user = await self.users.get_by_vendor_client_id(client_id)

        if user is None:
            logger.warning("session_user_not_found", by="email" if email else "client_id")
            raise NotFoundError(
                "User not found",
                code="user_not_found",
                user_message="No account found with this email address.",
            )
        return user

    async def bind_or_match(self, user: UserAccount, client_id: str) -> UserAccount:
        """Bind ``client_id`` on first use, otherwise require an exact match.

        Raises:
            IdentityMismatchError: If the user is bound to a different id, or
                the id is already bound to another user
        """
        if user.vendor_client_id is not None:
            if user.vendor_client_id != client_id:
                logger.error("client_id_mismatch", user_id=user.id)
                raise IdentityMismatchError("Client ID mismatch")
            return user

        owner = await self.users.get_by_vendor_client_id(client_id)
        if owner is not None and owner.id != user.id:
            logger.error("client_id_bound_elsewhere", user_id=user.id, owner_id=owner.id)
            raise IdentityMismatchError("Client ID is bound to another account")

        try:
            bound = await self.users.bind_vendor_client_id(user.id, client_id)
        except IntegrityError as e:
            raise IdentityMismatchError("Client ID is bound to another account") from e

        if not bound:
            # A concurrent request bound first; accept only if it bound the same id
            current = await self.users.get_by_id(user.id)
            if current is None or current.vendor_client_id != client_id:
                raise IdentityMismatchError("Client ID mismatch")
            return current

        logger.info("client_id_bound", user_id=user.id)
        return user.model_copy(update={"vendor_client_id": client_id})

    def outcome(self, user: UserAccount, client_id: str) -> SessionOutcome:
        return SessionOutcome(
            user=user,
            client_id=client_id,
            redirect_url=self.settings.redirect_url,
            strategy=self.name,
        )


class HardenedSessionStrategy(SessionStrategy):
    """Requires a client session token, claimed once and confirmed with Axiam."""

    name = "hardened"

    async def create(self, request: SessionRequest) -> SessionOutcome:
        if not (request.client_session_token and request.client_id):
            if has_legacy_proof(request):
                logger.warning("legacy_verification_rejected")
                raise ValidationError(
                    "Legacy verification proof is not accepted",
                    code="legacy_verification_disabled",
                    user_message="Please complete facial verification again.",
                )
            raise ValidationError(
                "client_session_token and client_id are required",
                user_message="Invalid login request",
            )

        await self.replay_guard.claim(request.client_session_token)

        if self.settings.validate_with_vendor:
            valid = await self.vendor.validate_session(
                request.client_session_token, request.client_id
            )
            if not valid:
                raise AuthError(
                    "Axiam did not confirm the client session token",
                    code="session_not_verified",
                    user_message="Verification could not be confirmed. Please try again.",
                )

        pending = await self.login.redeem(
            request.verification_token, request.email, request.client_id
        )
        email = request.email or (pending or {}).get("email")

        user = await self.resolve_user(email, request.client_id)
        user = await self.bind_or_match(user, request.client_id)

        logger.info("session_verified", user_id=user.id, strategy=self.name)
        return self.outcome(user, request.client_id)


class LegacySessionStrategy(SessionStrategy):
    """Less secure: accepts a bare ``verified`` flag or any verification artifact."""

    name = "legacy"

    async def create(self, request: SessionRequest) -> SessionOutcome:
        if request.client_session_token:
            await self.replay_guard.claim(request.client_session_token)

        if not has_legacy_proof(request) and not request.client_session_token:
            logger.error("legacy_verification_missing_proof")
            raise ForbiddenError(
                "No verification proof",
                code="verification_required",
                user_message="Please complete facial verification first",
            )

        logger.warning("legacy_verification_used")

        client_id = (
            request.client_id
            or request.axiam_uid
            or (request.verification_data or {}).get("client_id")
            or (request.data or {}).get("client_id")
        )

        pending = await self.login.redeem(request.verification_token, request.email, client_id)
        email = request.email or (pending or {}).get("email")
        client_id = client_id or (pending or {}).get("client_id")

        if not client_id and email:
            user = await self.resolve_user(email, None)
            client_id = user.vendor_client_id

        if not client_id:
            raise ValidationError("No client ID provided", user_message="Invalid authentication data")

        user = await self.resolve_user(email, client_id)
        user = await self.bind_or_match(user, client_id)

        logger.info("session_verified", user_id=user.id, strategy=self.name)
        return self.outcome(user, client_id)


SESSION_STRATEGIES: dict[str, type[SessionStrategy]] = {
    HardenedSessionStrategy.name: HardenedSessionStrategy,
    LegacySessionStrategy.name: LegacySessionStrategy,
}


def build_session_strategy(
    name: str,
    users: UserRepository,
    replay_guard: ReplayGuard,
    login: LoginInitiationService,
    vendor: VendorClient,
    settings: SignOnSettings,
) -> SessionStrategy:
    """Instantiate the configured session strategy."""
    try:
        strategy_cls = SESSION_STRATEGIES[name]
    except KeyError:
        raise ValueError(f"Unknown session strategy: {name}")
    return strategy_cls(users, replay_guard, login, vendor, settings)
