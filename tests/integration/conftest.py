"""Fixtures for tests that need a real PostgreSQL database.

Set LEAPS_TEST_DATABASE_URL (postgresql+asyncpg://...) to run them; they
are skipped otherwise. The schema comes from the alembic migrations so
the materialized views exist too.
"""

from __future__ import annotations

import os
import subprocess
import sys
from collections.abc import AsyncGenerator, Awaitable, Callable
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from leaps.database import close_db, get_session_factory, init_db
from leaps.db.models import User
from leaps.gamification.seed import seed_catalog

TEST_DATABASE_URL = os.environ.get("LEAPS_TEST_DATABASE_URL")
ROOT = Path(__file__).resolve().parents[2]

_migrated = False


def _ensure_migrations(url: str) -> None:
    """Apply alembic migrations once per test run."""
    global _migrated  # noqa: PLW0603
    if _migrated:
        return
    subprocess.run(
        [sys.executable, "-m", "alembic", "upgrade", "head"],
        check=True,
        capture_output=True,
        cwd=ROOT,
        env={**os.environ, "LEAPS_DATABASE_URL": url},
    )
    _migrated = True


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Migrated, emptied and seeded database."""
    if not TEST_DATABASE_URL:
        pytest.skip("LEAPS_TEST_DATABASE_URL not set")
    _ensure_migrations(TEST_DATABASE_URL)
    await init_db(TEST_DATABASE_URL)
    factory = get_session_factory()
    async with factory() as session:
        await session.execute(
            text(
                "TRUNCATE earned_badges, points_ledger, submission_attachments, submissions, users "
                "RESTART IDENTITY CASCADE"
            )
        )
        await seed_catalog(session)
    yield factory
    await close_db()


@pytest_asyncio.fixture
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def add_user(db: AsyncSession) -> Callable[..., Awaitable[User]]:
    """Insert a user; educator participant unless overridden."""

    async def _add(user_id: str, **overrides) -> User:
        values = {
            "id": user_id,
            "handle": user_id,
            "name": user_id.title(),
            "email": f"{user_id}@example.org",
            "role": "PARTICIPANT",
            "user_type": "EDUCATOR",
        }
        values.update(overrides)
        user = User(**values)
        db.add(user)
        await db.flush()
        return user

    return _add
