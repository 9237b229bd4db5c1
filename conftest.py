"""Shared pytest fixtures.

Axiam is replaced by an ``httpx.MockTransport``, Redis by fakeredis and the
database by a SQLite file, so the whole service runs in-process.
"""

import json
from dataclasses import dataclass, field
from typing import Callable, Optional

import fakeredis
import httpx
import pytest
import pytest_asyncio

from facial_signon.config import (
    AppSettings,
    DatabaseSettings,
    RelaySettings,
    SessionSettings,
    SignOnSettings,
    VendorSettings,
)
from facial_signon.context import AppContext
from facial_signon.db.base import DatabaseSessionManager
from facial_signon.db.repositories.users import UserRepository
from facial_signon.main import create_app
from facial_signon.services.token_cache import TokenCache
from facial_signon.services.vendor import (
    AUTH_PATH,
    LOOKUP_CLIENT_PATH,
    PUSH_NOTIFICATION_PATH,
    VALIDATE_SESSION_PATH,
)

AXIAM_BASE = "https://axiam.test"
RELAY_SECRET = "relay-secret-for-tests-0123456789abcdef"
SESSION_SECRET = "session-secret-for-tests-0123456789abcdef"


def make_settings(
    database_url: str = "sqlite+aiosqlite:///./unused.db",
    session_strategy: str = "hardened",
    verification_ttl: int = 300,
    site_id: str = "site-a",
    require_credential: bool = False,
) -> AppSettings:
    return AppSettings(
        database=DatabaseSettings(url=database_url),
        vendor=VendorSettings(
            api_base=AXIAM_BASE,
            api_key="test-api-key",
            secret_key="test-secret-key",
            domain="https://shop.example.com:443",
        ),
        relay=RelaySettings(
            jwt_secret=RELAY_SECRET,
            site_id=site_id,
            channel_prefix=None,
            server_url="ws://testserver/cable",
            require_credential=require_credential,
            poll_interval=0.05,
        ),
        signon=SignOnSettings(
            session_strategy=session_strategy,
            verification_ttl=verification_ttl,
            redirect_url="/dashboard",
        ),
        session=SessionSettings(secret_key=SESSION_SECRET),
    )


@dataclass
class AxiamCall:
    path: str
    body: dict
    bearer: Optional[str]


@dataclass
class FakeAxiam:
    """In-memory stand-in for the Axiam REST API."""

    calls: list = field(default_factory=list)
    issued_tokens: int = 0
    rejected_bearers: set = field(default_factory=set)
    auth_handler: Optional[Callable[[dict], httpx.Response]] = None
    routes: dict = field(default_factory=dict)

    def __post_init__(self):
        self.routes.setdefault(LOOKUP_CLIENT_PATH, self.lookup_ok)
        self.routes.setdefault(PUSH_NOTIFICATION_PATH, self.push_ok)
        self.routes.setdefault(VALIDATE_SESSION_PATH, self.validate_ok)

    @staticmethod
    def lookup_ok(body: dict) -> httpx.Response:
        return httpx.Response(
            200, json={"success": True, "data": {"client_id": "cid_123", "email": body.get("email")}}
        )

    def push_ok(self, body: dict) -> httpx.Response:
        count = len(self.calls_to(PUSH_NOTIFICATION_PATH))
        return httpx.Response(
            200,
            json={
                "success": True,
                "data": {"verification_token": f"vtok_{count}", "client_id": body.get("id")},
            },
        )

    @staticmethod
    def validate_ok(body: dict) -> httpx.Response:
        return httpx.Response(
            200, json={"success": True, "data": {"valid": True, "client_id": body.get("id")}}
        )

    def handle(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else {}
        auth = request.headers.get("authorization")
        bearer = auth[len("Bearer "):] if auth else None
        self.calls.append(AxiamCall(path=request.url.path, body=body, bearer=bearer))

        if request.url.path == AUTH_PATH:
            if self.auth_handler is not None:
                return self.auth_handler(body)
            self.issued_tokens += 1
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "data": {
                        "authenticated_token": f"app-token-{self.issued_tokens}",
                        "expires_in": 3600,
                    },
                },
            )

        if bearer in self.rejected_bearers:
            return httpx.Response(401, json={"success": False, "message": "Unauthorized"})

        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"success": False, "message": "No route"})
        return route(body)

    def calls_to(self, path: str) -> list:
        return [call for call in self.calls if call.path == path]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=AXIAM_BASE, transport=httpx.MockTransport(self.handle))


@pytest.fixture
def axiam() -> FakeAxiam:
    return FakeAxiam()


@pytest.fixture
def settings(tmp_path) -> AppSettings:
    return make_settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'signon.db'}")


@pytest_asyncio.fixture
async def redis():
    """Provide a fresh FakeAsyncRedis instance for each test."""
    r = fakeredis.FakeAsyncRedis(decode_responses=True)
    await r.flushall()
    yield r
    await r.aclose()


@pytest.fixture
def cache(redis) -> TokenCache:
    return TokenCache(redis)


@pytest_asyncio.fixture
async def db(settings):
    manager = DatabaseSessionManager()
    manager.init(database_url=settings.database.url)
    await manager.create_all()
    yield manager
    await manager.close()


@pytest_asyncio.fixture
async def context(settings, redis, db, axiam):
    ctx = AppContext(settings, redis, db, vendor_http=axiam.client())
    yield ctx
    await ctx.vendor.close()


@pytest.fixture
def app(settings, context):
    return create_app(settings, context)


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


async def create_user(db: DatabaseSessionManager, email: str, client_id: Optional[str] = None):
    """Insert a user in its own committed transaction."""
    async for session in db.session():
        user = await UserRepository(session).create(email, client_id)
    return user


async def fetch_user(db: DatabaseSessionManager, user_id: int):
    async for session in db.session():
        user = await UserRepository(session).get_by_id(user_id)
    return user
