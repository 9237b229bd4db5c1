"""Tests for the Axiam API client."""

import asyncio
import time

import httpx
import pytest

from facial_signon.core.exceptions import (
    AuthError,
    ForbiddenError,
    NotFoundError,
    RateLimitError,
    TransientNetworkError,
    UpstreamError,
    ValidationError,
)
from facial_signon.services.token_cache import vendor_auth_token_key
from facial_signon.services.vendor import (
    AUTH_PATH,
    LOOKUP_CLIENT_PATH,
    PUSH_NOTIFICATION_PATH,
    VALIDATE_SESSION_PATH,
    VendorClient,
)


@pytest.fixture
def vendor(settings, cache, axiam):
    return VendorClient(settings.vendor, cache, axiam.client())


@pytest.mark.asyncio
async def test_auth_token_is_fetched_once_and_cached(vendor, axiam, cache):
    first = await vendor.get_auth_token()
    second = await vendor.get_auth_token()

    assert first.token == "app-token-1"
    assert second.token == "app-token-1"
    assert len(axiam.calls_to(AUTH_PATH)) == 1

    # Domain is sent without protocol or port
    assert axiam.calls_to(AUTH_PATH)[0].body == {
        "api_key": "test-api-key",
        "secret_key": "test-secret-key",
        "domain": "shop.example.com",
    }
    cached = await cache.read(vendor_auth_token_key("shop.example.com"))
    assert cached["token"] == "app-token-1"


@pytest.mark.asyncio
async def test_token_near_expiry_is_refreshed(vendor, axiam, cache):
    await cache.write(
        vendor_auth_token_key("shop.example.com"),
        {"token": "almost-expired", "expires_at": int(time.time()) + 10},
        ttl=10,
    )

    token = await vendor.get_auth_token()

    assert token.token == "app-token-1"
    assert len(axiam.calls_to(AUTH_PATH)) == 1


@pytest.mark.asyncio
async def test_auth_failure_raises_auth_error(vendor, axiam):
    axiam.auth_handler = lambda body: httpx.Response(401, json={"success": False})

    with pytest.raises(AuthError):
        await vendor.get_auth_token()


@pytest.mark.asyncio
async def test_auth_malformed_json_raises_auth_error(vendor, axiam):
    axiam.auth_handler = lambda body: httpx.Response(200, content=b"<html>oops</html>")

    with pytest.raises(AuthError):
        await vendor.get_auth_token()


@pytest.mark.asyncio
async def test_auth_unsuccessful_payload_raises_auth_error(vendor, axiam):
    axiam.auth_handler = lambda body: httpx.Response(
        200, json={"success": False, "message": "Invalid API key"}
    )

    with pytest.raises(AuthError):
        await vendor.get_auth_token()


@pytest.mark.asyncio
async def test_rejected_bearer_refreshes_once_and_retries_once(vendor, axiam):
    await vendor.get_auth_token()
    axiam.rejected_bearers.add("app-token-1")

    payload = await vendor.lookup_client("user@example.com")

    assert payload["success"] is True
    lookups = axiam.calls_to(LOOKUP_CLIENT_PATH)
    assert [call.bearer for call in lookups] == ["app-token-1", "app-token-2"]
    assert len(axiam.calls_to(AUTH_PATH)) == 2


@pytest.mark.asyncio
async def test_second_rejection_raises_auth_error(vendor, axiam):
    axiam.rejected_bearers.update({"app-token-1", "app-token-2", "app-token-3"})

    with pytest.raises(AuthError):
        await vendor.push_notification("cid_123")

    # One original call and exactly one retry
    assert len(axiam.calls_to(PUSH_NOTIFICATION_PATH)) == 2
    assert len(axiam.calls_to(AUTH_PATH)) == 2


@pytest.mark.asyncio
async def test_concurrent_rejections_share_one_refresh(vendor, axiam):
    await vendor.get_auth_token()
    axiam.rejected_bearers.add("app-token-1")

    results = await asyncio.gather(
        vendor.lookup_client("a@example.com"),
        vendor.lookup_client("b@example.com"),
        vendor.lookup_client("c@example.com"),
    )

    assert all(result["success"] for result in results)
    # Initial fetch plus a single refresh
    assert len(axiam.calls_to(AUTH_PATH)) == 2


@pytest.mark.asyncio
async def test_push_notification_returns_token_and_payload(vendor, axiam):
    result = await vendor.push_notification("cid_123")

    assert result.verification_token == "vtok_1"
    assert result.payload["data"]["client_id"] == "cid_123"
    assert axiam.calls_to(PUSH_NOTIFICATION_PATH)[0].body == {"id": "cid_123"}


@pytest.mark.asyncio
async def test_push_notification_without_token_is_upstream_error(vendor, axiam):
    axiam.routes[PUSH_NOTIFICATION_PATH] = lambda body: httpx.Response(
        200, json={"success": True, "data": {}}
    )

    with pytest.raises(UpstreamError):
        await vendor.push_notification("cid_123")


@pytest.mark.parametrize(
    "vendor_code,error_cls,code",
    [
        (1006, ValidationError, "validation_error"),
        (1025, ValidationError, "validation_error"),
        (1007, NotFoundError, "client_not_found"),
        (1012, NotFoundError, "device_not_registered"),
        (1002, ForbiddenError, "facial_sign_on_disabled"),
        (1013, ForbiddenError, "account_locked"),
        (1020, RateLimitError, "rate_limited"),
        (1021, RateLimitError, "rate_limited"),
        (9999, UpstreamError, "upstream_error"),
    ],
)
@pytest.mark.asyncio
async def test_vendor_error_codes_map_to_taxonomy(vendor, axiam, vendor_code, error_cls, code):
    axiam.routes[LOOKUP_CLIENT_PATH] = lambda body: httpx.Response(
        200, json={"success": False, "code": vendor_code, "message": "internal vendor detail"}
    )

    with pytest.raises(error_cls) as exc_info:
        await vendor.lookup_client("user@example.com")

    assert exc_info.value.code == code
    assert exc_info.value.vendor_code == vendor_code
    assert "internal vendor detail" not in exc_info.value.user_message


@pytest.mark.asyncio
async def test_http_429_is_rate_limit(vendor, axiam):
    axiam.routes[PUSH_NOTIFICATION_PATH] = lambda body: httpx.Response(429, json={})

    with pytest.raises(RateLimitError):
        await vendor.push_notification("cid_123")


@pytest.mark.asyncio
async def test_malformed_json_is_upstream_error(vendor, axiam):
    axiam.routes[LOOKUP_CLIENT_PATH] = lambda body: httpx.Response(200, content=b"not json")

    with pytest.raises(UpstreamError):
        await vendor.lookup_client("user@example.com")


@pytest.mark.asyncio
async def test_timeout_is_transient_network_error(settings, cache):
    def timeout(request):
        raise httpx.ReadTimeout("timed out", request=request)

    client = httpx.AsyncClient(base_url="https://axiam.test", transport=httpx.MockTransport(timeout))
    vendor = VendorClient(settings.vendor, cache, client)

    with pytest.raises(TransientNetworkError):
        await vendor.get_auth_token()

    await vendor.close()


@pytest.mark.asyncio
async def test_connection_error_is_transient_network_error(settings, cache):
    def refused(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.AsyncClient(base_url="https://axiam.test", transport=httpx.MockTransport(refused))
    vendor = VendorClient(settings.vendor, cache, client)

    with pytest.raises(TransientNetworkError):
        await vendor.get_auth_token()

    await vendor.close()


@pytest.mark.asyncio
async def test_validate_session(vendor, axiam):
    assert await vendor.validate_session("cst_1", "cid_123") is True
    assert axiam.calls_to(VALIDATE_SESSION_PATH)[0].body == {
        "client_session_token": "cst_1",
        "id": "cid_123",
    }


@pytest.mark.asyncio
async def test_validate_session_rejects_other_client(vendor, axiam):
    axiam.routes[VALIDATE_SESSION_PATH] = lambda body: httpx.Response(
        200, json={"success": True, "data": {"valid": True, "client_id": "cid_other"}}
    )

    assert await vendor.validate_session("cst_1", "cid_123") is False


@pytest.mark.asyncio
async def test_validate_session_unsuccessful_is_false(vendor, axiam):
    axiam.routes[VALIDATE_SESSION_PATH] = lambda body: httpx.Response(
        200, json={"success": False, "code": 1007, "message": "Unknown session"}
    )

    assert await vendor.validate_session("cst_1", "cid_123") is False
