"""
Repository layer - data access for the persisted cache tables.
"""

import json
from datetime import datetime
from typing import Any, Callable, Mapping

from loguru import logger
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from travelhub.datastore.models import CachedActivityDB, CachedLocationDB
from travelhub.services.cache import CacheEntry, serialize_params
from travelhub.services.errors import CachePersistenceError

CacheModel = type[CachedLocationDB] | type[CachedActivityDB]


class CacheRepository:
    """Cached search results Repository"""

    def __init__(self, session: AsyncSession, model: CacheModel):
        self.session = session
        self.model = model
        self._key_column = getattr(model, model.KEY_FIELD)

    async def get(
        self, lookup_key: str, search_params: str, now: datetime
    ) -> CachedLocationDB | CachedActivityDB | None:
        """Get a live cached row"""
        result = await self.session.execute(
            select(self.model).where(
                self._key_column == lookup_key,
                self.model.search_params == search_params,
                self.model.expires_at > now,
            )
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        lookup_key: str,
        search_params: str,
        data: Any,
        meta: dict[str, Any],
        expires_at: datetime,
    ) -> None:
        """Insert or replace the row for (lookup_key, search_params)"""
        existing = await self.session.execute(
            select(self.model).where(
                self._key_column == lookup_key,
                self.model.search_params == search_params,
            )
        )
        cached = existing.scalar_one_or_none()

        data_json = json.dumps(data, ensure_ascii=False)
        meta_json = json.dumps(meta, ensure_ascii=False)

        if cached:
            cached.data_json = data_json
            cached.meta_json = meta_json
            cached.expires_at = expires_at
            logger.debug(f"Updated cache row for: {lookup_key}")
        else:
            cached = self.model(
                search_params=search_params,
                data_json=data_json,
                meta_json=meta_json,
                expires_at=expires_at,
            )
            setattr(cached, self.model.KEY_FIELD, lookup_key)
            self.session.add(cached)
            logger.debug(f"Created cache row for: {lookup_key}")

    async def cleanup_expired(self, now: datetime) -> int:
        """Delete expired rows"""
        result = await self.session.execute(
            delete(self.model).where(self.model.expires_at <= now)
        )
        deleted = result.rowcount or 0
        if deleted > 0:
            logger.debug(f"Cleaned up {deleted} expired {self.model.__tablename__} rows")
        return deleted

    async def get_cache_stats(self, now: datetime) -> dict[str, int]:
        """Row counts for monitoring"""
        total = await self.session.scalar(select(func.count()).select_from(self.model))
        expired = await self.session.scalar(
            select(func.count())
            .select_from(self.model)
            .where(self.model.expires_at <= now)
        )
        total = total or 0
        expired = expired or 0
        return {
            "total_entries": total,
            "expired_entries": expired,
            "active_entries": total - expired,
        }


class SqlCacheStore:
    """
    Persisted cache tier backed by one cache table.

    Every database failure surfaces as ``CachePersistenceError`` so the
    cache layer can log and ignore it.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        model: CacheModel,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._session_factory = session_factory
        self.model = model
        self._clock = clock

    async def load(
        self, lookup_key: str, search_params: Mapping[str, Any]
    ) -> CacheEntry | None:
        try:
            async with self._session_factory() as session:
                repo = CacheRepository(session, self.model)
                row = await repo.get(
                    _normalize_key(lookup_key),
                    serialize_params(search_params),
                    self._clock(),
                )
                if row is None:
                    return None
                return CacheEntry(
                    data=json.loads(row.data_json),
                    meta=json.loads(row.meta_json or "{}"),
                    created_at=row.updated_at or row.created_at,
                    expires_at=row.expires_at,
                )
        except (SQLAlchemyError, ValueError) as e:
            raise CachePersistenceError(
                f"Failed to read {self.model.__tablename__}: {e}"
            ) from e

    async def save(
        self,
        lookup_key: str,
        search_params: Mapping[str, Any],
        entry: CacheEntry,
    ) -> None:
        try:
            async with self._session_factory() as session:
                repo = CacheRepository(session, self.model)
                await repo.upsert(
                    _normalize_key(lookup_key),
                    serialize_params(search_params),
                    entry.data,
                    entry.meta,
                    entry.expires_at,
                )
                await session.commit()
        except (SQLAlchemyError, TypeError, ValueError) as e:
            raise CachePersistenceError(
                f"Failed to write {self.model.__tablename__}: {e}"
            ) from e

    async def purge_expired(self) -> int:
        try:
            async with self._session_factory() as session:
                repo = CacheRepository(session, self.model)
                deleted = await repo.cleanup_expired(self._clock())
                await session.commit()
                return deleted
        except SQLAlchemyError as e:
            raise CachePersistenceError(
                f"Failed to purge {self.model.__tablename__}: {e}"
            ) from e

    async def get_stats(self) -> dict[str, int]:
        try:
            async with self._session_factory() as session:
                return await CacheRepository(session, self.model).get_cache_stats(
                    self._clock()
                )
        except SQLAlchemyError as e:
            raise CachePersistenceError(
                f"Failed to count {self.model.__tablename__}: {e}"
            ) from e


def _normalize_key(lookup_key: str) -> str:
    return " ".join(lookup_key.split()).lower()[:255]
