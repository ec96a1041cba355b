from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from approval_engine.db import engine_options, get_session
from approval_engine.main import app
from approval_engine.models import SQLModel
from approval_engine.services.directory import InMemoryDirectoryService, set_directory_service
from approval_engine.services.notification import InMemoryNotifier, LoggingNotifier, set_notifier
from approval_engine.services.realtime import BroadcastHub, set_broadcaster

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine


@pytest.fixture
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """Per-test SQLite file database with every table created.

    A file (not ``:memory:``) so concurrent sessions each get their own
    connection and contend on the database lock the way real writers do.
    """
    url = f"sqlite+aiosqlite:///{tmp_path / 'approvals.db'}"
    _engine = create_async_engine(url, **engine_options(url))
    async with _engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield _engine
    await _engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """A session for direct service calls and assertions."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def async_client(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncClient]:
    """Async HTTP client; every request gets its own database session."""

    async def _override_get_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _override_get_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def directory() -> Iterator[InMemoryDirectoryService]:
    svc = InMemoryDirectoryService()
    set_directory_service(svc)
    yield svc
    set_directory_service(InMemoryDirectoryService())


@pytest.fixture(autouse=True)
def notifier() -> Iterator[InMemoryNotifier]:
    recorder = InMemoryNotifier()
    set_notifier(recorder)
    yield recorder
    set_notifier(LoggingNotifier())


@pytest.fixture(autouse=True)
def hub() -> Iterator[BroadcastHub]:
    _hub = BroadcastHub()
    set_broadcaster(_hub)
    yield _hub
    set_broadcaster(BroadcastHub())
