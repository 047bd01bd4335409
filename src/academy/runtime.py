"""Process wiring: connections, stores and services.

Usage:
    async with Runtime() as runtime:
        page = await runtime.users.list_users({"page": 1})

On start the runtime configures logging and metrics, creates the tables,
connects the cache store and builds the services. On stop it closes the
cache store and disposes the database engine.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from academy.cache.store import CacheStore, NullCacheStore, RedisCacheStore
from academy.config import Settings, settings
from academy.observability.logging import configure_logging
from academy.observability.metrics import get_metrics
from academy.ordering.sequencer import Sequencer
from academy.persistence.db import close_db, get_session_factory, init_db
from academy.persistence.ordered import SqlOrderedStore
from academy.persistence.repositories import SqlDocumentStore
from academy.persistence.tables import (
    CourseContentTable,
    GroupTable,
    QuizTable,
    UserGroupTable,
    UserTable,
)
from academy.services.base import CacheLayer
from academy.services.contents import CourseContentService
from academy.services.users import UserService

logger = logging.getLogger(__name__)


class Runtime:
    def __init__(
        self,
        config: Settings | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        cache_store: CacheStore | None = None,
    ):
        self.config = config or settings
        self._session_factory = session_factory
        self._cache_store = cache_store
        self._owns_cache_store = cache_store is None
        self.users: UserService | None = None
        self.contents: CourseContentService | None = None

    def _build_cache_store(self) -> CacheStore:
        if not self.config.cache_enabled:
            logger.info("Caching disabled, reads go straight to the primary store")
            return NullCacheStore()
        return RedisCacheStore(self.config.redis_url)

    async def start(self) -> None:
        configure_logging(json_format=self.config.log_json, level=self.config.log_level)
        get_metrics()

        logger.info("Starting %s (%s)", self.config.app_name, self.config.env)
        if self._session_factory is None:
            await init_db()
            self._session_factory = get_session_factory()

        if self._cache_store is None:
            self._cache_store = self._build_cache_store()
        if isinstance(self._cache_store, RedisCacheStore):
            await self._cache_store.connect()

        factory = self._session_factory
        cache = CacheLayer.over(self._cache_store)
        self.users = UserService(
            users=SqlDocumentStore(factory, UserTable, "User"),
            groups=SqlDocumentStore(factory, GroupTable, "Group"),
            memberships=SqlDocumentStore(factory, UserGroupTable, "Membership"),
            cache=cache,
        )
        self.contents = CourseContentService(
            contents=Sequencer(SqlOrderedStore(factory, CourseContentTable, "course_id", "Content")),
            quizzes=Sequencer(SqlOrderedStore(factory, QuizTable, "course_content_id", "Quiz")),
            cache=cache,
        )

    async def health(self) -> dict[str, bool]:
        """Reachability of the primary store and the cache store."""
        database = False
        if self._session_factory is not None:
            try:
                async with self._session_factory() as session:
                    await session.execute(text("SELECT 1"))
                database = True
            except (SQLAlchemyError, OSError) as e:
                logger.warning("Database health check failed: %s", e)
        cache = self._cache_store is not None and await self._cache_store.ping()
        return {"database": database, "cache": cache}

    async def stop(self) -> None:
        if self._owns_cache_store and isinstance(self._cache_store, RedisCacheStore):
            await self._cache_store.disconnect()
        await close_db()
        logger.info("Stopped %s", self.config.app_name)

    async def __aenter__(self) -> Runtime:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()
