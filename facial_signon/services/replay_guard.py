"""One-time-use enforcement for client session tokens."""

from facial_signon.core.exceptions import ReplayError, ValidationError
from facial_signon.core.logging import get_logger, redact
from facial_signon.services.token_cache import TokenCache, replay_guard_key

logger = get_logger(__name__)

USED_MARKER = "used"


class ReplayGuard:
    """Marks client session tokens as used, exactly once."""

    def __init__(self, cache: TokenCache, ttl: int = 300):
        self.cache = cache
        self.ttl = ttl

    async def claim(self, session_token: str) -> None:
        """Mark ``session_token`` used.

        Uses set-if-absent so that of any number of concurrent claims on the
        same token exactly one returns normally.

        Raises:
            ValidationError: If the token is blank
            ReplayError: If the token was already used
        """
        if not session_token:
            raise ValidationError("Session token is required")

        claimed = await self.cache.write_if_absent(
            replay_guard_key(session_token), USED_MARKER, self.ttl
        )
        if not claimed:
            logger.warning("session_token_reuse_detected", session_token=redact(session_token))
            raise ReplayError()

        logger.info("session_token_claimed", session_token=redact(session_token))

    async def is_used(self, session_token: str) -> bool:
        return await self.cache.read(replay_guard_key(session_token)) == USED_MARKER
