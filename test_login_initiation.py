"""Tests for the login initiation flow and the session-scoped token endpoint."""

import asyncio

import httpx
import pytest

from conftest import create_user, make_settings
from facial_signon.core.exceptions import (
    NotEnabledError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)
from facial_signon.db.repositories.users import UserRepository
from facial_signon.services.login import LoginInitiationService, validate_email
from facial_signon.services.token_cache import verification_email_key, verification_token_key
from facial_signon.services.vendor import PUSH_NOTIFICATION_PATH


@pytest.mark.parametrize("email", [None, "", "   ", "not-an-email", "a@b", "two@@example.com"])
def test_validate_email_rejects(email):
    with pytest.raises(ValidationError):
        validate_email(email)


def test_validate_email_trims():
    assert validate_email("  user@example.com ") == "user@example.com"


async def initiate(db, context, email):
    async for session in db.session():
        login = LoginInitiationService(
            UserRepository(session), context.vendor, context.cache, site_id="site-a", ttl=300
        )
        pending = await login.initiate(email)
    return pending


@pytest.mark.asyncio
async def test_initiate_caches_token_by_token_and_email(db, context, cache, axiam):
    user = await create_user(db, "user@example.com", "cid_123")

    pending = await initiate(db, context, "user@example.com")

    assert pending.verification_token == "vtok_1"
    assert pending.client_id == "cid_123"
    assert axiam.calls_to(PUSH_NOTIFICATION_PATH)[0].body == {"id": "cid_123"}

    by_token = await cache.read(verification_token_key("vtok_1"))
    assert by_token["user_id"] == user.id
    assert by_token["email"] == "user@example.com"
    assert by_token["site_id"] == "site-a"

    by_email = await cache.read(verification_email_key("user@example.com"))
    assert by_email["verification_token"] == "vtok_1"
    assert 0 < await cache.ttl(verification_token_key("vtok_1")) <= 300


@pytest.mark.asyncio
async def test_initiate_unknown_user(db, context, axiam):
    with pytest.raises(NotFoundError) as exc_info:
        await initiate(db, context, "nobody@example.com")

    assert exc_info.value.code == "user_not_found"
    assert axiam.calls_to(PUSH_NOTIFICATION_PATH) == []


@pytest.mark.asyncio
async def test_initiate_not_enabled(db, context, axiam):
    await create_user(db, "plain@example.com")

    with pytest.raises(NotEnabledError):
        await initiate(db, context, "plain@example.com")

    assert axiam.calls_to(PUSH_NOTIFICATION_PATH) == []


@pytest.mark.asyncio
async def test_initiate_rate_limited(db, context, axiam, cache):
    await create_user(db, "user@example.com", "cid_123")
    axiam.routes[PUSH_NOTIFICATION_PATH] = lambda body: httpx.Response(
        200, json={"success": False, "code": 1020, "message": "Too many requests"}
    )

    with pytest.raises(RateLimitError):
        await initiate(db, context, "user@example.com")

    assert await cache.read(verification_email_key("user@example.com")) is None


# HTTP surface


@pytest.mark.asyncio
async def test_push_notification_keeps_token_in_session(client, db):
    await create_user(db, "user@example.com", "cid_123")

    response = await client.post("/facial_sign_on/push_notification", json={"email": "user@example.com"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["expires_in"] == 300
    assert "vtok_1" not in response.text

    token_response = await client.get("/facial_sign_on/verification_token")
    assert token_response.status_code == 200
    assert token_response.json()["token"] == "vtok_1"
    assert 0 < token_response.json()["expires_in"] <= 300


@pytest.mark.asyncio
async def test_push_notification_accepts_alternate_email_fields(client, db):
    await create_user(db, "user@example.com", "cid_123")

    response = await client.post(
        "/facial_sign_on/push_notification", json={"data": {"email": "user@example.com"}}
    )

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_token_is_not_readable_from_another_session(client, app, db):
    await create_user(db, "user@example.com", "cid_123")
    await client.post("/facial_sign_on/push_notification", json={"email": "user@example.com"})

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as other:
        response = await other.get("/facial_sign_on/verification_token")

    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "error": "Token expired or not found",
        "code": "token_expired",
        "vendor_code": None,
    }


@pytest.mark.asyncio
async def test_token_expires_with_session_entry(tmp_path, redis, db, axiam):
    from facial_signon.context import AppContext
    from facial_signon.main import create_app

    settings = make_settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'signon.db'}", verification_ttl=1
    )
    context = AppContext(settings, redis, db, vendor_http=axiam.client())
    app = create_app(settings, context)
    await create_user(db, "user@example.com", "cid_123")

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        await client.post("/facial_sign_on/push_notification", json={"email": "user@example.com"})
        await asyncio.sleep(1.2)
        response = await client.get("/facial_sign_on/verification_token")

    assert response.status_code == 401
    assert await context.cache.read(verification_token_key("vtok_1")) is None
    await context.vendor.close()


@pytest.mark.asyncio
async def test_push_notification_error_payloads(client, db):
    await create_user(db, "plain@example.com")

    missing = await client.post("/facial_sign_on/push_notification", json={})
    unknown = await client.post("/facial_sign_on/push_notification", json={"email": "x@example.com"})
    disabled = await client.post("/facial_sign_on/push_notification", json={"email": "plain@example.com"})

    assert missing.status_code == 400
    assert missing.json()["code"] == "validation_error"
    assert unknown.status_code == 404
    assert unknown.json()["code"] == "user_not_found"
    assert disabled.status_code == 404
    assert disabled.json()["code"] == "not_enabled"
