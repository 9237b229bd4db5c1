"""Tests for the async session manager and the user repository."""

import pytest

from conftest import create_user
from facial_signon.db.base import DatabaseSessionManager
from facial_signon.db.repositories.users import UserRepository, normalize_email


def test_session_manager_requires_init():
    manager = DatabaseSessionManager()

    with pytest.raises(RuntimeError):
        manager.engine


@pytest.mark.asyncio
async def test_sqlite_engine_skips_pool_sizing(tmp_path):
    manager = DatabaseSessionManager()
    manager.init(f"sqlite+aiosqlite:///{tmp_path / 'pool.db'}", pool_size=3, max_overflow=1)

    try:
        await manager.create_all()
        assert manager.engine.url.get_backend_name() == "sqlite"
    finally:
        await manager.close()

    with pytest.raises(RuntimeError):
        manager.engine


@pytest.mark.asyncio
async def test_session_rolls_back_on_error(db):
    sessions = db.session()
    session = await sessions.__anext__()
    await UserRepository(session).create("rollback@example.com")

    with pytest.raises(ValueError):
        await sessions.athrow(ValueError("abort"))

    async for session in db.session():
        assert await UserRepository(session).get_by_email("rollback@example.com") is None


@pytest.mark.asyncio
async def test_session_commits_on_success(db):
    user = await create_user(db, "  Mixed.Case@Example.com ", "cid_9")

    assert user.email == "mixed.case@example.com"
    async for session in db.session():
        found = await UserRepository(session).get_by_email("MIXED.CASE@example.com")
    assert found.id == user.id
    assert found.vendor_client_id == "cid_9"


def test_normalize_email():
    assert normalize_email("  User@Example.COM ") == "user@example.com"
