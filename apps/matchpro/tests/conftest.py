"""
Shared pytest configuration for MatchPro tests.

Tests run against a throwaway SQLite database (aiosqlite) by default. Set
TEST_DATABASE_URL to run them against PostgreSQL instead.

SAFETY: This module REFUSES to run against any database whose name does not
contain the substring "test". This prevents accidental data loss in the
development or production database when environment variables are
misconfigured.
"""

import os

os.environ.setdefault("ENV", "test")
os.environ.setdefault("BILLING_WORKER_ENABLED", "false")

import asyncio  # noqa: E402
import uuid  # noqa: E402
from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from matchpro.database.db import Base  # noqa: E402
from matchpro.services import match_service, team_service, user_service  # noqa: E402
from matchpro.utils.datetime_utils import utcnow  # noqa: E402


def _resolve_test_database_url(tmp_path) -> str:
    """Build the test database URL with safety checks.

    Raises ``RuntimeError`` if the resolved URL does not point to a database
    whose name contains "test".
    """
    url = os.getenv("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'matchpro_test.db'}"

    # ── Safety gate: database name MUST contain "test" ──────────────────
    db_name = url.rsplit("/", 1)[-1].split("?")[0]
    if "test" not in db_name.lower():
        raise RuntimeError(
            f"\n{'=' * 70}\n"
            f"  SAFETY: Refusing to run tests against database '{db_name}'.\n"
            f"  The database name must contain 'test' to prevent accidental\n"
            f"  data loss in development or production databases.\n\n"
            f"  Resolved URL: {url}\n\n"
            f"  Fix: set TEST_DATABASE_URL to a test database, e.g.:\n"
            f"    export TEST_DATABASE_URL=postgresql+asyncpg://.../matchpro_test\n"
            f"{'=' * 70}"
        )
    return url


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a test database engine with a fresh schema."""
    # NullPool avoids connection reuse across event loops
    engine = create_async_engine(
        _resolve_test_database_url(tmp_path),
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        from matchpro.database import models  # noqa: F401

        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    # Code that opens its own sessions (the billing worker) must hit the
    # test database too
    from matchpro.database import db

    original_async_session_local = db.AsyncSessionLocal
    db.AsyncSessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    yield engine

    db.AsyncSessionLocal = original_async_session_local
    try:
        await asyncio.sleep(0.05)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Database session for a single test; uncommitted work is rolled back."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


async def make_user(session, display_name: str = "Test User", nickname=None) -> int:
    """Create a user with a unique email and return its id."""
    return await user_service.create_user(
        session,
        email=f"{uuid.uuid4().hex[:10]}@example.com",
        password_hash="hashed",
        display_name=display_name,
        nickname=nickname,
    )


async def add_member(session, team: dict, display_name: str, role: str = "player") -> dict:
    """
    Create a user, join them to the team and optionally promote them.

    Returns:
        Dict with user_id and player (serialized roster entry)
    """
    user_id = await make_user(session, display_name)
    joined = await team_service.join_team(session, user_id, team["code"])
    if role != "player":
        await team_service.set_member_role(session, team["id"], user_id, role)
    return {"user_id": user_id, "player": joined["player"]}


async def confirm_all(session, team_id: int, match_id: int, player_ids) -> None:
    for player_id in player_ids:
        await match_service.set_presence(session, team_id, match_id, player_id, "confirmed")


@pytest_asyncio.fixture
async def owner_id(db_session):
    return await make_user(db_session, "Owner Olly")


@pytest_asyncio.fixture
async def team(db_session, owner_id):
    """A per-game team (10.00 per match) owned by owner_id."""
    created = await team_service.create_team(
        db_session, owner_id, "Sunday FC", billing_mode="PER_GAME", per_game_amount=10.0
    )
    return created["team"]


@pytest_asyncio.fixture
async def squad(db_session, team):
    """Three regular players with accounts, joined by invite code."""
    return [
        await add_member(db_session, team, name) for name in ("Ana", "Bruno", "Carla")
    ]


@pytest_asyncio.fixture
async def upcoming_match(db_session, team, owner_id):
    return await match_service.create_match(
        db_session,
        team["id"],
        date=utcnow() + timedelta(days=3),
        opponent="Rovers",
        location="Park",
        created_by=owner_id,
    )


@pytest_asyncio.fixture
async def recent_match(db_session, team, owner_id):
    """A match played yesterday."""
    return await match_service.create_match(
        db_session,
        team["id"],
        date=utcnow() - timedelta(days=1),
        opponent="United",
        created_by=owner_id,
    )


@pytest.fixture
def member_factory(db_session):
    """Async factory: await member_factory(team, "Name", role="player")."""

    async def _make(team: dict, display_name: str, role: str = "player") -> dict:
        return await add_member(db_session, team, display_name, role)

    return _make


@pytest.fixture
def user_factory(db_session):
    """Async factory: await user_factory("Name") -> user id."""

    async def _make(display_name: str = "Test User", nickname=None) -> int:
        return await make_user(db_session, display_name, nickname)

    return _make


@pytest.fixture
def confirm_players(db_session):
    """Async helper confirming presence for several players of a match."""

    async def _confirm(team_id: int, match_id: int, player_ids) -> None:
        await confirm_all(db_session, team_id, match_id, player_ids)

    return _confirm
