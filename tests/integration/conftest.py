"""Integration test fixtures using Docker.

Provides containerized PostgreSQL and Redis; every test here is skipped
when no Docker daemon is reachable.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterator, Iterator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from academy.cache.store import RedisCacheStore
from academy.persistence.tables import Base
from tests.integration.docker_utils import (
    POSTGRES,
    REDIS,
    DockerService,
    get_docker_client,
    run_service,
)


@pytest.fixture(scope="session")
def docker_client():
    """Create a Docker client or skip if Docker is unavailable."""
    try:
        client = get_docker_client()
        client.ping()
    except Exception as exc:
        pytest.skip(f"Docker not available: {exc}")
    yield client
    client.close()


@pytest.fixture(scope="session")
def postgres_container(docker_client) -> Iterator[DockerService]:
    with run_service(docker_client, POSTGRES) as postgres:
        yield postgres


@pytest.fixture(scope="session")
def redis_container(docker_client) -> Iterator[DockerService]:
    with run_service(docker_client, REDIS) as redis:
        yield redis


@pytest.fixture(scope="session")
def database_url(postgres_container: DockerService) -> str:
    return (
        f"postgresql+asyncpg://academy:academy@"
        f"{postgres_container.host}:{postgres_container.port}/academy"
    )


@pytest.fixture(scope="session")
def redis_url(redis_container: DockerService) -> str:
    return f"redis://{redis_container.host}:{redis_container.port}/0"


@pytest_asyncio.fixture
async def db_engine(database_url: str) -> AsyncIterator[AsyncEngine]:
    """Engine with a freshly created schema, dropped after the test."""
    engine = create_async_engine(database_url, echo=False)
    await _wait_for(lambda: _ping_engine(engine))

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def cache_store(redis_url: str) -> AsyncIterator[RedisCacheStore]:
    """Connected cache store over an emptied database."""
    store = RedisCacheStore(redis_url)
    await store.connect()
    await _wait_for(store.client.ping)
    yield store
    await store.client.flushdb()
    await store.disconnect()


async def _ping_engine(engine: AsyncEngine) -> None:
    async with engine.connect():
        return


async def _wait_for(probe, timeout: float = 30.0) -> None:
    """Retry ``probe`` until it stops raising or the timeout passes."""
    deadline = time.monotonic() + timeout
    while True:
        try:
            await probe()
            return
        except Exception:
            if time.monotonic() >= deadline:
                raise
            await asyncio.sleep(0.5)
