"""
Shared pytest configuration for backend tests.

Defaults to a local SQLite file through aiosqlite; set TEST_DATABASE_URL to
run against PostgreSQL instead.

SAFETY: This module REFUSES to run against any database whose name does not
contain the substring "test".  This prevents accidental drop of the
development or production database when environment variables are missing
or misconfigured.
"""

import os

os.environ.setdefault("ENV", "test")

import asyncio  # noqa: E402
from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from lineup_backend.database.db import Base  # noqa: E402
from lineup_backend.database.init_defaults import seed_positions  # noqa: E402
from lineup_backend.database.models import Game, Player, Team, User  # noqa: E402
from lineup_backend.services.settings_service import AppConfig  # noqa: E402
from lineup_backend.utils.datetime_utils import utcnow  # noqa: E402


def _resolve_test_database_url() -> str:
    """Build the test database URL with safety checks.

    Raises ``RuntimeError`` if the resolved URL does not point to a database
    whose name contains "test".
    """
    url = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///./lineup_test.db")

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
            f"    export TEST_DATABASE_URL=postgresql+asyncpg://.../{db_name}_test\n"
            f"{'=' * 70}"
        )

    return url


TEST_DATABASE_URL = _resolve_test_database_url()


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a fresh schema for one test and drop it afterwards."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    # Route handlers open sessions through db.AsyncSessionLocal
    from lineup_backend.database import db

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

    await asyncio.sleep(0.05)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Session on an empty schema with the position catalogue seeded."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session_maker() as session:
        await seed_positions(session)
        await session.commit()
        try:
            yield session
        finally:
            await session.rollback()
            await session.close()


@pytest_asyncio.fixture
async def owner(db_session):
    user = User(email="coach@example.com", full_name="Casey Coach")
    db_session.add(user)
    await db_session.flush()
    return user


@pytest_asyncio.fixture
async def team(db_session, owner):
    team = Team(user_id=owner.id, name="Rockets", season="Spring", year=2025, sport_type="softball")
    db_session.add(team)
    await db_session.flush()
    return team


@pytest_asyncio.fixture
async def roster(db_session, team):
    """Nine players on the team, in creation order."""
    players = [
        Player(team_id=team.id, first_name=f"Player{i}", last_name=f"Last{i}", jersey_number=str(i))
        for i in range(1, 10)
    ]
    db_session.add_all(players)
    await db_session.flush()
    return players


@pytest_asyncio.fixture
async def game(db_session, team):
    game = Game(team_id=team.id, opponent_name="Comets", game_date=utcnow() + timedelta(days=3), innings=6)
    db_session.add(game)
    await db_session.flush()
    return game


@pytest.fixture
def app_config():
    return AppConfig(
        optimizer_url="http://optimizer.test/optimize",
        optimizer_timeout_seconds=5.0,
        access_duration_days=None,
        unlock_price_amount=19.99,
        unlock_currency="usd",
    )


@pytest.fixture(autouse=True)
def no_redis(monkeypatch):
    """Tests never touch Redis; the settings cache always misses."""
    from lineup_backend.services import settings_service

    async def fake_get_cached_setting(key):
        return None

    async def fake_set_cached_setting(key, value):
        return None

    async def fake_clear_cache():
        return None

    monkeypatch.setattr(settings_service, "_get_cached_setting", fake_get_cached_setting)
    monkeypatch.setattr(settings_service, "_set_cached_setting", fake_set_cached_setting)
    monkeypatch.setattr(settings_service, "_clear_cache", fake_clear_cache)
