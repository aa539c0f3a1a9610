from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from leaveflow.db import get_session
from leaveflow.main import app
from leaveflow.models import SQLModel
from leaveflow.services.entitlement import set_entitlement_check
from leaveflow.services.notifications import (
    InMemoryNotificationEmitter,
    LoggingNotificationEmitter,
    set_notification_emitter,
)
from factories import Org, build_org

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """A fresh SQLite database file per test.

    A file rather than ``:memory:`` so that several sessions, each with its own
    connection, see the same data; the timeout lets concurrent writers queue
    on the database lock instead of failing.
    """
    _engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'leaveflow.db'}",
        connect_args={"timeout": 30},
    )
    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield _engine
    await _engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def async_client(db_session: AsyncSession) -> AsyncIterator[AsyncClient]:
    """Async HTTP client with the database session dependency overridden."""

    async def _override_get_session() -> AsyncIterator[AsyncSession]:
        yield db_session

    app.dependency_overrides[get_session] = _override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def notifier() -> Iterator[InMemoryNotificationEmitter]:
    """Record notifications for every test and restore the defaults afterwards."""
    emitter = InMemoryNotificationEmitter()
    set_notification_emitter(emitter)
    yield emitter
    set_notification_emitter(LoggingNotificationEmitter())
    set_entitlement_check(None)


@pytest.fixture
async def org(session_factory: async_sessionmaker[AsyncSession]) -> Org:
    """A seeded tenant built in its own session.

    The rows come back detached, so a rollback in the session under test
    does not expire them.
    """
    async with session_factory() as session:
        return await build_org(session)


@pytest.fixture
async def other_org(session_factory: async_sessionmaker[AsyncSession]) -> Org:
    async with session_factory() as session:
        return await build_org(session, name="Globex")
