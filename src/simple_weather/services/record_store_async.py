import asyncio
import logging
from datetime import datetime
from typing import Callable, List, Optional, TypeVar

from sqlalchemy import Select, create_engine, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from src.simple_weather.errors import PersistenceError
from src.simple_weather.models import (
    Base,
    CachedLocationRecord,
    SavedPlaceRecord,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class AsyncRecordStore:
    """Async durable store for the cached location and saved places.

    SQLAlchemy's synchronous engine is used and every blocking call is
    delegated to a worker thread via `asyncio.to_thread`, so each method is
    a suspension point for the caller. SQLAlchemy errors are re-raised as
    `PersistenceError`.

    Attributes:
        db_url (str): Database connection URL.
        _engine: SQLAlchemy Engine instance.
        _SessionLocal: Session factory.
    """

    def __init__(self, db_url: str) -> None:
        self.db_url: str = db_url
        self._engine = create_engine(db_url, echo=False, future=True)
        self._SessionLocal = sessionmaker(
            bind=self._engine, expire_on_commit=False
        )

    async def _run(self, operation: Callable[[Session], T]) -> T:
        def _query() -> T:
            with self._SessionLocal() as session:
                return operation(session)

        try:
            return await asyncio.to_thread(_query)
        except SQLAlchemyError as e:
            raise PersistenceError(str(e)) from e

    async def create_schema(self) -> None:
        """Create all tables. Failure here is fatal for the caller."""

        def _create() -> None:
            Base.metadata.create_all(self._engine)

        try:
            await asyncio.to_thread(_create)
        except SQLAlchemyError as e:
            raise PersistenceError(str(e)) from e

    async def dispose(self) -> None:
        await asyncio.to_thread(self._engine.dispose)

    async def put(self, record: Base) -> Base:
        """Insert or update a record and return the persisted object."""

        def _op(session: Session) -> Base:
            merged = session.merge(record)
            session.commit()
            return merged

        return await self._run(_op)

    async def get(self, query: Select) -> Optional[Base]:
        """Return the first entity selected by `query`, or None."""

        def _op(session: Session) -> Optional[Base]:
            return session.execute(query).scalars().first()

        return await self._run(_op)

    async def delete(self, record: Base) -> None:
        def _op(session: Session) -> None:
            session.delete(session.merge(record))
            session.commit()

        await self._run(_op)

    async def replace_cached_location(
        self, latitude: float, longitude: float, captured_at: datetime
    ) -> CachedLocationRecord:
        """Replace the cached-location slot with a new record.

        The delete and the insert happen in one transaction so readers never
        observe two rows.

        Args:
            latitude (float): Latitude of the fix.
            longitude (float): Longitude of the fix.
            captured_at (datetime): Capture time (UTC).

        Returns:
            CachedLocationRecord: The stored record.
        """

        def _op(session: Session) -> CachedLocationRecord:
            session.execute(delete(CachedLocationRecord))
            record = CachedLocationRecord(
                latitude=latitude,
                longitude=longitude,
                captured_at=captured_at,
            )
            session.add(record)
            session.commit()
            session.refresh(record)
            return record

        return await self._run(_op)

    async def get_cached_location(self) -> Optional[CachedLocationRecord]:
        record = await self.get(
            select(CachedLocationRecord).order_by(
                CachedLocationRecord.captured_at.desc()
            )
        )
        return record if isinstance(record, CachedLocationRecord) else None

    async def clear_cached_location(self) -> int:
        """Delete every cached-location row, returning the count removed."""

        def _op(session: Session) -> int:
            result = session.execute(delete(CachedLocationRecord))
            session.commit()
            return int(result.rowcount or 0)

        return await self._run(_op)

    async def list_saved_places(self) -> List[SavedPlaceRecord]:
        """Return persisted saved places (never placeholders), oldest first."""

        def _op(session: Session) -> List[SavedPlaceRecord]:
            result = session.execute(
                select(SavedPlaceRecord)
                .filter(SavedPlaceRecord.is_current_location.is_(False))
                .order_by(SavedPlaceRecord.created_at)
            )
            return list(result.scalars().all())

        return await self._run(_op)

    async def delete_saved_place(self, place_id: str) -> bool:
        def _op(session: Session) -> bool:
            result = session.execute(
                delete(SavedPlaceRecord).where(SavedPlaceRecord.id == place_id)
            )
            session.commit()
            return bool(result.rowcount)

        return await self._run(_op)

    async def delete_current_location_places(self) -> int:
        """Remove placeholder rows persisted by older versions."""

        def _op(session: Session) -> int:
            result = session.execute(
                delete(SavedPlaceRecord).where(
                    SavedPlaceRecord.is_current_location.is_(True)
                )
            )
            session.commit()
            return int(result.rowcount or 0)

        removed = await self._run(_op)
        if removed:
            logger.info(f"Removed {removed} persisted current-location rows")
        return removed
