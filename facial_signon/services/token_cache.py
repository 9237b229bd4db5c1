"""Redis-backed TTL cache for verification tokens, replay markers and bearer tokens."""

import json
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from facial_signon.core.exceptions import TransientNetworkError
from facial_signon.core.logging import get_logger

logger = get_logger(__name__)


def verification_token_key(token: str) -> str:
    return f"facial_token:{token}"


def verification_email_key(email: str) -> str:
    return f"facial_email:{email.strip().lower()}"


def replay_guard_key(session_token: str) -> str:
    return f"client_session_token:{session_token}"


def vendor_auth_token_key(domain: str) -> str:
    return f"axiam_authenticated_token:{domain}"


class TokenCache:
    """JSON key-value store with per-key TTL.

    Values live in Redis so every worker process sees the same tokens; a
    per-process dict would let a subscription on one worker miss a token
    written by another.
    """

    def __init__(self, redis: aioredis.Redis):
        self.redis = redis

    async def write(self, key: str, value: Any, ttl: int) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds."""
        try:
            await self.redis.set(key, json.dumps(value), ex=max(1, int(ttl)))
        except RedisError as e:
            logger.error("cache_write_failed", key_namespace=key.split(":", 1)[0], error=str(e))
            raise TransientNetworkError(f"Cache write failed: {type(e).__name__}") from e

    async def write_if_absent(self, key: str, value: Any, ttl: int) -> bool:
        """Atomically store ``value`` unless ``key`` already exists.

        Returns:
            True if this call created the key
        """
        try:
            created = await self.redis.set(key, json.dumps(value), ex=max(1, int(ttl)), nx=True)
        except RedisError as e:
            logger.error("cache_write_failed", key_namespace=key.split(":", 1)[0], error=str(e))
            raise TransientNetworkError(f"Cache write failed: {type(e).__name__}") from e
        return bool(created)

    async def read(self, key: str) -> Optional[Any]:
        """Return the stored value, or None on a miss or an undecodable entry."""
        try:
            raw = await self.redis.get(key)
        except (RedisError, UnicodeDecodeError) as e:
            return self._read_failed(key, e)
        return self._decode(key, raw)

    async def take(self, key: str) -> Optional[Any]:
        """Atomically read and delete ``key``.

        Of any number of concurrent takes on the same key at most one sees the
        value; the rest get None.
        """
        try:
            raw = await self.redis.getdel(key)
        except (RedisError, UnicodeDecodeError) as e:
            return self._read_failed(key, e)
        return self._decode(key, raw)

    def _read_failed(self, key: str, error: Exception) -> None:
        namespace = key.split(":", 1)[0]
        if isinstance(error, UnicodeDecodeError):
            logger.warning("cache_entry_undecodable", key_namespace=namespace)
            return None
        logger.error("cache_read_failed", key_namespace=namespace, error=str(error))
        raise TransientNetworkError(f"Cache read failed: {type(error).__name__}") from error

    def _decode(self, key: str, raw: Any) -> Optional[Any]:
        if raw is None:
            return None
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            return json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("cache_entry_undecodable", key_namespace=key.split(":", 1)[0])
            return None

    async def delete(self, *keys: str) -> int:
        """Delete keys; returns how many existed."""
        if not keys:
            return 0
        try:
            return await self.redis.delete(*keys)
        except RedisError as e:
            logger.error("cache_delete_failed", error=str(e))
            raise TransientNetworkError(f"Cache delete failed: {type(e).__name__}") from e

    async def ttl(self, key: str) -> Optional[int]:
        """Remaining lifetime in seconds, or None if the key does not exist."""
        try:
            remaining = await self.redis.ttl(key)
        except RedisError as e:
            raise TransientNetworkError(f"Cache ttl failed: {type(e).__name__}") from e
        return remaining if remaining >= 0 else None

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except RedisError:
            return False
