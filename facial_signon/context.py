"""Application context: the shared resources of one running service."""

from typing import Optional

import httpx
import redis.asyncio as aioredis

from facial_signon.config import AppSettings
from facial_signon.core.logging import get_logger
from facial_signon.db.base import DatabaseSessionManager
from facial_signon.services.relay import RelayAuthorizer, RelayBroker
from facial_signon.services.relay_token import RelayTokenService
from facial_signon.services.replay_guard import ReplayGuard
from facial_signon.services.revocation import RevocationService
from facial_signon.services.token_cache import TokenCache
from facial_signon.services.vendor import VendorClient

logger = get_logger(__name__)


class AppContext:
    """Owns the Redis connection, the Axiam HTTP client and the database manager.

    One instance is created per application and stored on ``app.state.context``;
    request handlers reach it through the dependencies in
    ``facial_signon.dependencies``.
    """

    def __init__(
        self,
        settings: AppSettings,
        redis: aioredis.Redis,
        db: DatabaseSessionManager,
        vendor_http: Optional[httpx.AsyncClient] = None,
    ):
        self.settings = settings
        self.redis = redis
        self.db = db

        self.cache = TokenCache(redis)
        self.vendor = VendorClient(settings.vendor, self.cache, vendor_http)
        self.replay_guard = ReplayGuard(self.cache, ttl=settings.signon.replay_ttl)
        self.revocation = RevocationService(self.cache)
        self.relay_tokens = RelayTokenService(
            secret_key=settings.relay.jwt_secret,
            site_id=settings.relay.site_id,
            revocation=self.revocation,
            expires_in=settings.relay.token_expiry,
        )
        self.relay_authorizer = RelayAuthorizer(self.cache, self.relay_tokens, settings.relay)
        self.broker = RelayBroker(redis, poll_interval=settings.relay.poll_interval)

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "AppContext":
        """Connect Redis and initialize the database engine from settings."""
        redis = aioredis.from_url(
            settings.redis.url,
            socket_timeout=settings.redis.socket_timeout,
            decode_responses=True,
        )
        logger.info("redis_initialized")

        db = DatabaseSessionManager()
        db.init(
            database_url=settings.database.url,
            pool_size=settings.database.pool_size,
            max_overflow=settings.database.max_overflow,
            pool_timeout=settings.database.pool_timeout,
            echo=settings.database.echo,
        )
        logger.info("database_initialized")

        return cls(settings, redis, db)

    async def close(self) -> None:
        """Release every resource the context owns."""
        await self.vendor.close()
        await self.redis.aclose()
        await self.db.close()
        logger.info("context_closed")
