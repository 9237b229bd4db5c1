"""WebSocket relay endpoints.

Message format (outbound from server):
    {"type": "confirm_subscription", "site_id": ..., "authenticated": ..., "token": ..., "timestamp": ...}
    {"type": "message", "channel": "facial_sign_on_login_<token>", "data": {"status": "verified", ...}}

Message format (inbound from client):
    {"type": "ping"}  -> server responds with {"type": "pong"}

Close codes:
    4001: credential missing, invalid, expired or revoked
    4003: credential belongs to another site
    4004: verification token unknown or expired
    4400: required query parameter missing
    4500: relay backend unavailable
"""

import asyncio
import json
from typing import Annotated, Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from facial_signon.core.exceptions import (
    AuthError,
    ForbiddenError,
    IdentityMismatchError,
    NotFoundError,
    SignOnError,
    ValidationError,
)
from facial_signon.core.logging import get_logger
from facial_signon.core.security import bearer_from_header
from facial_signon.dependencies import BrokerDep, RelayAuthorizerDep
from facial_signon.services.relay import RelayBroker, RelayListener, RelaySubscription

logger = get_logger(__name__)

router = APIRouter(prefix="/cable", tags=["relay"])

# WebSocket close codes (4000-4999 are application-defined)
WS_CLOSE_AUTH_FAILED = 4001
WS_CLOSE_ACCESS_DENIED = 4003
WS_CLOSE_NOT_FOUND = 4004
WS_CLOSE_BAD_REQUEST = 4400
WS_CLOSE_SERVER_ERROR = 4500


def close_code_for(error: SignOnError) -> int:
    """Map a rejection onto an application close code."""
    if isinstance(error, ValidationError):
        return WS_CLOSE_BAD_REQUEST
    if isinstance(error, (IdentityMismatchError, ForbiddenError)):
        return WS_CLOSE_ACCESS_DENIED
    if isinstance(error, NotFoundError):
        return WS_CLOSE_NOT_FOUND
    if isinstance(error, AuthError):
        return WS_CLOSE_AUTH_FAILED
    return WS_CLOSE_SERVER_ERROR


async def reject(websocket: WebSocket, error: SignOnError) -> None:
    """Accept, then close with an application close code and a safe reason."""
    logger.warning("relay_connection_rejected", code=error.code, error=error.message)
    # Must accept before closing with a custom code
    await websocket.accept()
    await websocket.close(code=close_code_for(error), reason=error.user_message)


def presented_credential(websocket: WebSocket, access_token: Optional[str]) -> Optional[str]:
    return access_token or bearer_from_header(websocket.headers.get("authorization"))


async def forward_events(websocket: WebSocket, listener: RelayListener, channel: str) -> None:
    async for event in listener.events():
        await websocket.send_json({"type": "message", "channel": channel, "data": event})
        logger.debug("relay_event_forwarded", channel=channel, status=event.get("status"))


async def answer_pings(websocket: WebSocket) -> None:
    """Serve inbound client messages until the client disconnects."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            logger.info("relay_client_disconnected", code=message.get("code", 1000))
            return

        text_data = message.get("text")
        if not text_data:
            continue
        try:
            inbound = json.loads(text_data)
        except json.JSONDecodeError:
            continue
        if isinstance(inbound, dict) and inbound.get("type") == "ping":
            await websocket.send_json({"type": "pong"})


async def serve_subscription(
    websocket: WebSocket, broker: RelayBroker, subscription: RelaySubscription
) -> None:
    """Stream a channel to an accepted socket until the client or the broker goes away.

    When the broker connection fails the socket is closed with 4500 so the
    browser re-subscribes instead of waiting on a dead channel.
    """
    await websocket.accept()

    try:
        listener = await broker.subscribe(subscription.channel)
    except SignOnError as e:
        logger.error("relay_subscribe_failed", error=e.message)
        await websocket.close(code=WS_CLOSE_SERVER_ERROR, reason=e.user_message)
        return

    tasks: set[asyncio.Task] = set()
    try:
        await websocket.send_json(subscription.confirmation())

        forwarder = asyncio.create_task(
            forward_events(websocket, listener, subscription.channel)
        )
        receiver = asyncio.create_task(answer_pings(websocket))
        tasks = {forwarder, receiver}
        done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.wait(pending)

        if receiver in done:
            receiver_error = receiver.exception()
            if receiver_error is not None and not isinstance(receiver_error, WebSocketDisconnect):
                raise receiver_error

        if forwarder in done:
            error = forwarder.exception()
            if isinstance(error, SignOnError):
                logger.error("relay_forwarder_stopped", error=error.message)
                await websocket.close(code=WS_CLOSE_SERVER_ERROR, reason=error.user_message)
            elif isinstance(error, (WebSocketDisconnect, RuntimeError)):
                # Sending to a socket the client already closed
                logger.info("relay_forwarder_stopped", error=str(error))
            elif error is not None:
                raise error

    except WebSocketDisconnect as wsd:
        logger.info("relay_client_disconnected", code=wsd.code)
    finally:
        for task in tasks:
            task.cancel()
        await listener.close()
        logger.info("relay_subscription_closed", kind=subscription.kind)


@router.websocket("/facial_sign_on_login")
async def login_relay(
    websocket: WebSocket,
    authorizer: RelayAuthorizerDep,
    broker: BrokerDep,
    token: Annotated[Optional[str], Query()] = None,
    access_token: Annotated[Optional[str], Query()] = None,
) -> None:
    """Subscribe to the status updates of one verification token.

    Query Parameters:
        token: Verification token from ``GET /facial_sign_on/verification_token`` (required)
        access_token: Relay credential (optional; may also be sent as a Bearer header)
    """
    try:
        subscription = await authorizer.authorize_login(
            token, presented_credential(websocket, access_token)
        )
    except SignOnError as e:
        await reject(websocket, e)
        return

    await serve_subscription(websocket, broker, subscription)


@router.websocket("/facial_sign_on_device")
async def device_relay(
    websocket: WebSocket,
    authorizer: RelayAuthorizerDep,
    broker: BrokerDep,
    client_id: Annotated[Optional[str], Query()] = None,
    access_token: Annotated[Optional[str], Query()] = None,
) -> None:
    """Subscribe to device registration updates for one Axiam client."""
    try:
        subscription = await authorizer.authorize_device(
            client_id, presented_credential(websocket, access_token)
        )
    except SignOnError as e:
        await reject(websocket, e)
        return

    await serve_subscription(websocket, broker, subscription)
