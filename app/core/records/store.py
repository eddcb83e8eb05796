"""
Record store used by the permission and delegation features.

The store is append/delete-only: records are created and deleted, never
updated in place. Every write is published to the change feed so that
in-memory indexes and edit sessions stay current.
"""
from collections.abc import Mapping
from typing import Any, Protocol

from fastapi import Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.database.base import Base
from app.core.errors import NotFound
from app.core.records.feed import ChangeEvent, ChangeFeed, ChangeType
from app.utils import get_logger


log = get_logger(__name__)


class RecordStore(Protocol):
    """Minimal persistence contract consumed by the access core."""

    async def query(self, collection: str, filter: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        ...

    async def create(self, collection: str, data: Mapping[str, Any]) -> str:
        ...

    async def delete(self, collection: str, record_id: str) -> None:
        ...


def default_collections() -> dict[str, type[Base]]:
    """Collections exposed through the store, keyed by collection name."""
    from app.features.organizations.models import Company, Section, Job, JobDistribution
    from app.features.users.models import User
    from app.features.permissions.models import JobPermission, UserException
    from app.features.delegation.models import ResourceGrant, DelegationRule

    return {
        JobPermission.__tablename__: JobPermission,
        UserException.__tablename__: UserException,
        ResourceGrant.__tablename__: ResourceGrant,
        DelegationRule.__tablename__: DelegationRule,
        JobDistribution.__tablename__: JobDistribution,
        Company.__tablename__: Company,
        Section.__tablename__: Section,
        Job.__tablename__: Job,
        User.__tablename__: User,
    }


class SqlRecordStore:
    """
    RecordStore over an async SQLAlchemy session factory.

    Each operation runs in its own session so that a batch of operations can
    be awaited concurrently. `origin` identifies the writer on the change
    feed (one origin per administrative session).
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        feed: ChangeFeed | None = None,
        origin: str | None = None,
        collections: Mapping[str, type[Base]] | None = None,
    ):
        self._session_factory = session_factory
        self._feed = feed
        self.origin = origin
        self._collections = dict(collections) if collections is not None else default_collections()

    def with_origin(self, origin: str) -> "SqlRecordStore":
        """Same database and feed, writes tagged with another origin."""
        return SqlRecordStore(self._session_factory, self._feed, origin, self._collections)

    def _model(self, collection: str) -> type[Base]:
        try:
            return self._collections[collection]
        except KeyError:
            raise NotFound("collection", collection) from None

    async def query(self, collection: str, filter: Mapping[str, Any] | None = None) -> list[dict[str, Any]]:
        model = self._model(collection)
        stmt = select(model)
        for key, value in (filter or {}).items():
            column = model.__table__.c.get(key)
            if column is None:
                raise ValueError(f"Unknown field {key!r} for collection {collection!r}")
            stmt = stmt.where(column.is_(None) if value is None else column == value)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [row.to_record() for row in result.scalars().all()]

    async def create(self, collection: str, data: Mapping[str, Any]) -> str:
        model = self._model(collection)
        async with self._session_factory() as session:
            row = model(**data)
            session.add(row)
            await session.commit()
            await session.refresh(row)
            record = row.to_record()
        log.info("Created %s:%s", collection, record["id"])
        await self._publish(ChangeType.ADDED, collection, record)
        return record["id"]

    async def delete(self, collection: str, record_id: str) -> None:
        model = self._model(collection)
        async with self._session_factory() as session:
            row = await session.get(model, record_id)
            if row is None:
                raise NotFound(collection, record_id)
            record = row.to_record()
            await session.delete(row)
            await session.commit()
        log.info("Deleted %s:%s", collection, record_id)
        await self._publish(ChangeType.REMOVED, collection, record)

    async def _publish(self, change: ChangeType, collection: str, record: dict[str, Any]) -> None:
        if self._feed is None:
            return
        await self._feed.publish(ChangeEvent(
            type=change,
            collection=collection,
            id=record["id"],
            data=record,
            origin=self.origin,
        ))


def get_change_feed(request: Request) -> ChangeFeed:
    """FastAPI dependency: the process-wide change feed."""
    return request.app.state.change_feed


def get_record_store(request: Request) -> SqlRecordStore:
    """
    FastAPI dependency: the process-wide record store.

    Writes are tagged with the caller's X-Edit-Session header so that an
    editor subscribed under the same origin sees them as its own.
    """
    store: SqlRecordStore = request.app.state.record_store
    origin = request.headers.get("X-Edit-Session")
    return store.with_origin(origin) if origin else store
