"""User repository for database operations."""

import time
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from facial_signon.core.logging import get_logger
from facial_signon.db.models import User
from facial_signon.models.domain import UserAccount

logger = get_logger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserRepository:
    """Repository for local user lookups and vendor client binding."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, email: str, vendor_client_id: Optional[str] = None) -> UserAccount:
        """Create a new user; the email is stored trimmed and lowercased."""
        user = User(email=normalize_email(email), vendor_client_id=vendor_client_id)
        self.session.add(user)
        await self.session.flush()
        await self.session.refresh(user)

        logger.debug("db_query_complete", operation="create", user_id=user.id)

        return UserAccount.model_validate(user)

    async def get_by_id(self, user_id: int) -> Optional[UserAccount]:
        """Retrieve user by primary key."""
        result = await self.session.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()
        return UserAccount.model_validate(user) if user else None

    async def get_by_email(self, email: str) -> Optional[UserAccount]:
        """Retrieve user by email address, ignoring case and surrounding whitespace."""
        start_time = time.time()
        logger.debug("db_query", operation="get_by_email")

        result = await self.session.execute(
            select(User).where(func.lower(User.email) == normalize_email(email))
        )
        user = result.scalar_one_or_none()

        duration_ms = (time.time() - start_time) * 1000
        logger.debug(
            "db_query_complete",
            operation="get_by_email",
            found=user is not None,
            duration_ms=round(duration_ms, 2),
        )

        return UserAccount.model_validate(user) if user else None

    async def get_by_vendor_client_id(self, client_id: str) -> Optional[UserAccount]:
        """Retrieve user by bound Axiam client id."""
        result = await self.session.execute(select(User).where(User.vendor_client_id == client_id))
        user = result.scalar_one_or_none()
        return UserAccount.model_validate(user) if user else None

    async def bind_vendor_client_id(self, user_id: int, client_id: str) -> bool:
        """Bind a client id to a user that has none yet.

        The update only matches rows whose client id is still NULL, so a
        concurrent bind of a different id cannot overwrite the first one.

        Returns:
            True if this call performed the binding
        """
        start_time = time.time()
        logger.debug("db_query", operation="bind_vendor_client_id", user_id=user_id)

        result = await self.session.execute(
            update(User)
            .where(User.id == user_id, User.vendor_client_id.is_(None))
            .values(vendor_client_id=client_id)
        )
        bound = result.rowcount > 0

        duration_ms = (time.time() - start_time) * 1000
        logger.debug(
            "db_query_complete",
            operation="bind_vendor_client_id",
            user_id=user_id,
            bound=bound,
            duration_ms=round(duration_ms, 2),
        )

        return bound
