"""Axiam facial sign-on API client."""

import asyncio
import time
from typing import Any, Optional

import httpx

from facial_signon.config import VendorSettings
from facial_signon.core.exceptions import (
    AuthError,
    ForbiddenError,
    NotFoundError,
    RateLimitError,
    SignOnError,
    TransientNetworkError,
    UpstreamError,
    ValidationError,
)
from facial_signon.core.logging import get_logger, redact
from facial_signon.models.domain import PushNotificationResult, VendorAuthToken
from facial_signon.services.token_cache import TokenCache, vendor_auth_token_key

logger = get_logger(__name__)

AUTH_PATH = "/api/v1/facial_sign_on/application_auth"
LOOKUP_CLIENT_PATH = "/api/v1/facial_sign_on/login/lookup_client"
PUSH_NOTIFICATION_PATH = "/api/v1/facial_sign_on/login/push_notification"
VALIDATE_SESSION_PATH = "/api/v1/facial_sign_on/login/validate_session"

# Axiam error codes
VENDOR_INVALID_PARAMS = 1006
VENDOR_CLIENT_NOT_FOUND = 1007
VENDOR_FACIAL_DISABLED = 1002
VENDOR_DEVICE_NOT_REGISTERED = 1012
VENDOR_ACCOUNT_LOCKED = 1013
VENDOR_RATE_LIMITED = (1020, 1021)
VENDOR_CLIENT_ID_REQUIRED = 1025

AUTH_REJECTED_STATUSES = (401, 403)


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def vendor_error(payload: dict, operation: str) -> SignOnError:
    """Map an unsuccessful Axiam payload onto the error taxonomy."""
    code = _as_int(payload.get("code"))
    message = f"{operation} failed: {payload.get('message') or payload.get('error') or 'unknown error'}"
    user_message = payload.get("user_message")
    details = {"vendor_code": code, "operation": operation}

    if code in (VENDOR_INVALID_PARAMS, VENDOR_CLIENT_ID_REQUIRED):
        return ValidationError(message, details, user_message or "Invalid request.")
    if code == VENDOR_CLIENT_NOT_FOUND:
        return NotFoundError(message, "client_not_found", details, user_message)
    if code == VENDOR_DEVICE_NOT_REGISTERED:
        return NotFoundError(message, "device_not_registered", details, user_message)
    if code == VENDOR_FACIAL_DISABLED:
        return ForbiddenError(message, "facial_sign_on_disabled", details, user_message)
    if code == VENDOR_ACCOUNT_LOCKED:
        return ForbiddenError(message, "account_locked", details, user_message)
    if code in VENDOR_RATE_LIMITED:
        return RateLimitError(message, details)
    return UpstreamError(message, details, user_message)


class VendorClient:
    """Client for the Axiam REST API.

    Every call carries the cached application bearer token. A 401/403 answer
    triggers one token refresh and one retry; a second rejection raises
    AuthError.
    """

    def __init__(
        self,
        settings: VendorSettings,
        cache: TokenCache,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the Axiam client.

        Args:
            settings: Axiam configuration settings
            cache: Shared cache holding the application bearer token
            client: Optional preconfigured HTTP client (base URL must be the Axiam API base)
        """
        self.settings = settings
        self.cache = cache
        self.client = client or httpx.AsyncClient(
            base_url=settings.api_base, timeout=settings.timeout
        )
        self._refresh_lock = asyncio.Lock()

    @property
    def _token_key(self) -> str:
        return vendor_auth_token_key(self.settings.domain)

    async def get_auth_token(
        self, force_refresh: bool = False, stale_token: Optional[str] = None
    ) -> VendorAuthToken:
        """Return the application bearer token, fetching a new one when needed.

        Refreshes are single-flight: callers that queue behind an in-flight
        refresh reuse its result instead of fetching again.

        Args:
            force_refresh: Ignore the cached token
            stale_token: The token that was just rejected; a cached token that
                differs from it was refreshed by another caller and is reused

        Raises:
            AuthError: If Axiam rejects the credentials or answers malformed JSON
            TransientNetworkError: If Axiam cannot be reached
        """
        if not force_refresh:
            cached = await self._cached_token()
            if cached:
                return cached

        async with self._refresh_lock:
            cached = await self._cached_token()
            if cached and (
                not force_refresh or (stale_token is not None and cached.token != stale_token)
            ):
                return cached
            if force_refresh:
                await self.cache.delete(self._token_key)
            return await self._fetch_auth_token()

    async def _cached_token(self) -> Optional[VendorAuthToken]:
        entry = await self.cache.read(self._token_key)
        if not isinstance(entry, dict) or not entry.get("token"):
            return None
        token = VendorAuthToken(token=entry["token"], expires_at=int(entry.get("expires_at", 0)))
        if token.expires_in(int(time.time())) <= self.settings.token_refresh_margin:
            return None
        return token

    async def _fetch_auth_token(self) -> VendorAuthToken:
        body = {
            "api_key": self.settings.api_key,
            "secret_key": self.settings.secret_key,
            "domain": self.settings.domain,
        }

        logger.info("fetch_auth_token", domain=self.settings.domain)

        response = await self._send(AUTH_PATH, body)

        if not response.is_success:
            logger.error(
                "fetch_auth_token_failed",
                status_code=response.status_code,
                error=response.text,
            )
            raise AuthError(
                f"Axiam authentication failed: HTTP {response.status_code}",
                details={"status_code": response.status_code},
            )

        try:
            payload = response.json()
        except ValueError:
            logger.error("fetch_auth_token_failed", error="invalid_json")
            raise AuthError("Axiam authentication returned malformed JSON")

        data = payload.get("data") if isinstance(payload, dict) else None
        if not (isinstance(data, dict) and payload.get("success") and data.get("authenticated_token")):
            error_msg = payload.get("message") if isinstance(payload, dict) else None
            logger.error("fetch_auth_token_failed", error=error_msg or "unknown")
            raise AuthError(f"Axiam authentication failed: {error_msg or 'Unknown error'}")

        expires_in = _as_int(data.get("expires_in")) or self.settings.default_token_ttl
        token = VendorAuthToken(
            token=data["authenticated_token"], expires_at=int(time.time()) + expires_in
        )
        await self.cache.write(self._token_key, token.model_dump(), ttl=expires_in)

        logger.info("fetch_auth_token_success", expires_in=expires_in)

        return token

    async def _send(
        self, path: str, body: dict, bearer: Optional[str] = None
    ) -> httpx.Response:
        headers = {"Content-Type": "application/json"}
        if bearer:
            headers["Authorization"] = f"Bearer {bearer}"
        try:
            return await self.client.post(path, json=body, headers=headers)
        except httpx.TimeoutException as e:
            logger.error("vendor_request_timeout", path=path)
            raise TransientNetworkError(f"Axiam request timed out: {path}") from e
        except httpx.HTTPError as e:
            logger.error("vendor_request_failed", path=path, error=type(e).__name__)
            raise TransientNetworkError(f"Axiam request failed: {type(e).__name__}") from e

    async def _post(self, path: str, body: dict) -> dict:
        """POST with the bearer token, refreshing and retrying once on 401/403."""
        token = await self.get_auth_token()
        response = await self._send(path, body, token.token)

        if response.status_code in AUTH_REJECTED_STATUSES:
            logger.warning("vendor_token_rejected", path=path, status_code=response.status_code)
            token = await self.get_auth_token(force_refresh=True, stale_token=token.token)
            response = await self._send(path, body, token.token)

            if response.status_code in AUTH_REJECTED_STATUSES:
                logger.error("vendor_token_rejected_after_refresh", path=path)
                raise AuthError(
                    f"Axiam rejected the refreshed bearer token: HTTP {response.status_code}",
                    details={"status_code": response.status_code},
                )

        if response.status_code == 429:
            raise RateLimitError(f"Axiam throttled {path}", {"status_code": 429})

        try:
            payload = response.json()
        except ValueError:
            logger.error(
                "vendor_invalid_json", path=path, status_code=response.status_code, body=response.text
            )
            raise UpstreamError(f"Invalid API response from {path}")

        if not isinstance(payload, dict):
            raise UpstreamError(f"Unexpected API response shape from {path}")

        return payload

    async def lookup_client(self, email: str) -> dict:
        """Resolve the Axiam client registered for ``email``.

        Returns:
            The Axiam payload, passed through unchanged

        Raises:
            NotFoundError: If Axiam has no client for the email
            ForbiddenError: If facial sign-on is disabled or the account is locked
        """
        payload = await self._post(LOOKUP_CLIENT_PATH, {"email": email})

        if not payload.get("success"):
            logger.warning("lookup_client_failed", code=payload.get("code"), error=payload.get("message"))
            raise vendor_error(payload, "Client lookup")

        logger.info("lookup_client_success")
        return payload

    async def push_notification(self, client_id: str) -> PushNotificationResult:
        """Ask Axiam to prompt the user's mobile device for facial verification.

        Raises:
            RateLimitError: If Axiam throttles the client
            UpstreamError: If no verification token is returned
        """
        payload = await self._post(PUSH_NOTIFICATION_PATH, {"id": client_id})

        if not payload.get("success"):
            logger.error("push_notification_failed", code=payload.get("code"), error=payload.get("message"))
            raise vendor_error(payload, "Push notification")

        data = payload.get("data")
        verification_token = data.get("verification_token") if isinstance(data, dict) else None
        if not verification_token:
            logger.error("push_notification_missing_token")
            raise UpstreamError(
                "Push notification response carried no verification token",
                user_message="No verification token received. Please try again.",
            )

        logger.info("push_notification_sent", verification_token=redact(verification_token))
        return PushNotificationResult(verification_token=verification_token, payload=payload)

    async def validate_session(self, session_token: str, client_id: str) -> bool:
        """Ask Axiam whether a client session token is genuine for ``client_id``."""
        payload = await self._post(
            VALIDATE_SESSION_PATH, {"client_session_token": session_token, "id": client_id}
        )

        if not payload.get("success"):
            code = _as_int(payload.get("code"))
            if code in VENDOR_RATE_LIMITED:
                raise vendor_error(payload, "Session validation")
            logger.warning("validate_session_rejected", code=code, error=payload.get("message"))
            return False

        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        echoed_client_id = data.get("client_id")
        valid = bool(data.get("valid")) and echoed_client_id in (None, client_id)

        logger.info("validate_session_complete", valid=valid)
        return valid

    async def close(self) -> None:
        """Close HTTP client and cleanup resources."""
        await self.client.aclose()
