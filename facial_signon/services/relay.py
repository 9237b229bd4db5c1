"""Real-time notification relay.

Each pending verification token maps to exactly one channel. Axiam's backend
publishes status updates to it; browsers subscribe over a WebSocket. Delivery
is fire-and-forget Redis pub/sub: an event published while nobody listens is
lost, and the browser recovers by re-subscribing.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

import redis.asyncio as aioredis
from redis.asyncio.client import PubSub
from redis.exceptions import RedisError

from facial_signon.config import RelaySettings
from facial_signon.core.exceptions import (
    AuthError,
    IdentityMismatchError,
    NotFoundError,
    TransientNetworkError,
    ValidationError,
)
from facial_signon.core.logging import get_logger, redact
from facial_signon.models.domain import RelayEvent, SiteIdentity
from facial_signon.services.relay_token import RelayTokenService
from facial_signon.services.token_cache import TokenCache, verification_token_key

logger = get_logger(__name__)

LOGIN_CHANNEL = "login"
DEVICE_CHANNEL = "device"

_CHANNEL_FORMATS = {
    LOGIN_CHANNEL: "facial_sign_on_login_{}",
    DEVICE_CHANNEL: "facial_sign_on_device_{}",
}


def channel_name(kind: str, identifier: str) -> str:
    """Channel for a verification token (``login``) or a client id (``device``)."""
    try:
        return _CHANNEL_FORMATS[kind].format(identifier)
    except KeyError:
        raise ValueError(f"Unknown channel kind: {kind}")


def broker_channel(name: str, prefix: Optional[str] = None) -> str:
    """Broker-level channel name, namespaced by the public routing prefix."""
    return f"{prefix}:{name}" if prefix else name


@dataclass(frozen=True)
class RelaySubscription:
    """An authorized subscription."""

    channel: str
    identity: SiteIdentity
    kind: str
    identifier: str

    def confirmation(self) -> dict:
        key = "token" if self.kind == LOGIN_CHANNEL else "client_id"
        return {
            "type": "confirm_subscription",
            "site_id": self.identity.site_id,
            "authenticated": self.identity.authenticated,
            key: self.identifier,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }


class RelayAuthorizer:
    """Decides whether a subscriber may listen on a channel."""

    def __init__(
        self,
        cache: TokenCache,
        relay_tokens: RelayTokenService,
        settings: RelaySettings,
    ):
        self.cache = cache
        self.relay_tokens = relay_tokens
        self.settings = settings

    async def identify(self, credential: Optional[str]) -> SiteIdentity:
        """Resolve the subscriber's tenant from an optional relay credential.

        Raises:
            AuthError: If the credential is invalid, or absent while required
        """
        if credential:
            return await self.relay_tokens.verify(credential)
        if self.settings.require_credential:
            raise AuthError("Relay credential required", code="credential_required")
        return SiteIdentity.anonymous()

    async def authorize_login(
        self, token: Optional[str], credential: Optional[str] = None
    ) -> RelaySubscription:
        """Authorize a subscription to a verification token's channel.

        Raises:
            ValidationError: If the token is missing
            NotFoundError: If the token is unknown or expired
            AuthError: If the credential is invalid
            IdentityMismatchError: If the credential belongs to another site
        """
        if not token:
            logger.warning("relay_subscription_rejected", reason="missing_token")
            raise ValidationError("Verification token is required", code="token_required")

        pending = await self.cache.read(verification_token_key(token))
        if not isinstance(pending, dict):
            logger.warning(
                "relay_subscription_rejected", reason="unknown_token", token=redact(token)
            )
            raise NotFoundError(
                "Verification token not found or expired",
                code="token_not_found",
                user_message="Verification expired. Please try again.",
            )

        identity = await self.identify(credential)

        if identity.authenticated:
            recorded_site = pending.get("site_id")
            if recorded_site is not None and recorded_site != identity.site_id:
                logger.error(
                    "relay_site_mismatch",
                    token=redact(token),
                    token_site=recorded_site,
                    credential_site=identity.site_id,
                )
                raise IdentityMismatchError("Site ID mismatch", code="site_mismatch")

        logger.info(
            "relay_subscription_authorized",
            kind=LOGIN_CHANNEL,
            token=redact(token),
            authenticated=identity.authenticated,
        )
        return RelaySubscription(
            channel=broker_channel(channel_name(LOGIN_CHANNEL, token), self.settings.channel_prefix),
            identity=identity,
            kind=LOGIN_CHANNEL,
            identifier=token,
        )

    async def authorize_device(
        self, client_id: Optional[str], credential: Optional[str] = None
    ) -> RelaySubscription:
        """Authorize a subscription to a device (sign-up) channel."""
        if not client_id:
            logger.warning("relay_subscription_rejected", reason="missing_client_id")
            raise ValidationError("Client ID is required", code="client_id_required")

        identity = await self.identify(credential)

        logger.info(
            "relay_subscription_authorized",
            kind=DEVICE_CHANNEL,
            authenticated=identity.authenticated,
        )
        return RelaySubscription(
            channel=broker_channel(
                channel_name(DEVICE_CHANNEL, client_id), self.settings.channel_prefix
            ),
            identity=identity,
            kind=DEVICE_CHANNEL,
            identifier=client_id,
        )


class RelayBroker:
    """Redis pub/sub transport for relay events."""

    def __init__(self, redis: aioredis.Redis, poll_interval: float = 1.0):
        self.redis = redis
        self.poll_interval = poll_interval

    async def publish(self, channel: str, event: RelayEvent | dict) -> int:
        """Publish an event; returns the number of subscribers that received it."""
        if isinstance(event, RelayEvent):
            payload = event.model_dump(exclude_none=True)
        else:
            payload = dict(event)
        payload.setdefault("timestamp", datetime.now(timezone.utc).isoformat())

        try:
            receivers = await self.redis.publish(channel, json.dumps(payload))
        except RedisError as e:
            logger.error("relay_publish_failed", channel=channel, error=str(e))
            raise TransientNetworkError(f"Relay publish failed: {type(e).__name__}") from e

        logger.info(
            "relay_event_published", channel=channel, status=payload.get("status"), receivers=receivers
        )
        return receivers

    async def subscribe(self, channel: str) -> "RelayListener":
        """Subscribe to ``channel``; events published after this returns are delivered."""
        pubsub = self.redis.pubsub()
        try:
            await pubsub.subscribe(channel)
        except RedisError as e:
            await pubsub.aclose()
            logger.error("relay_subscribe_failed", channel=channel, error=str(e))
            raise TransientNetworkError(f"Relay subscribe failed: {type(e).__name__}") from e

        logger.debug("relay_channel_subscribed", channel=channel)
        return RelayListener(pubsub, channel, self.poll_interval)

    async def listen(self, channel: str) -> AsyncIterator[dict[str, Any]]:
        """Yield decoded events published to ``channel`` until the caller stops."""
        listener = await self.subscribe(channel)
        try:
            async for event in listener.events():
                yield event
        finally:
            await listener.close()


class RelayListener:
    """One live subscription to a relay channel."""

    def __init__(self, pubsub: PubSub, channel: str, poll_interval: float):
        self.pubsub = pubsub
        self.channel = channel
        self.poll_interval = poll_interval

    async def events(self) -> AsyncIterator[dict[str, Any]]:
        """Yield decoded events; messages that are not JSON objects are dropped."""
        while True:
            try:
                message = await self.pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=self.poll_interval,
                )
            except RedisError as e:
                logger.error("relay_receive_failed", channel=self.channel, error=str(e))
                raise TransientNetworkError(f"Relay receive failed: {type(e).__name__}") from e
            if message is None or message.get("type") != "message":
                continue

            data = message["data"]
            try:
                if isinstance(data, bytes):
                    data = data.decode("utf-8")
                event = json.loads(data)
            except (UnicodeDecodeError, json.JSONDecodeError):
                logger.warning("relay_invalid_json", channel=self.channel)
                continue
            if not isinstance(event, dict):
                logger.warning("relay_invalid_event", channel=self.channel)
                continue

            yield event

    async def close(self) -> None:
        """Unsubscribe and release the connection; a broken connection is only logged."""
        try:
            await self.pubsub.unsubscribe(self.channel)
        except RedisError as e:
            logger.warning("relay_unsubscribe_failed", channel=self.channel, error=str(e))
        finally:
            await self.pubsub.aclose()
        logger.debug("relay_channel_unsubscribed", channel=self.channel)
