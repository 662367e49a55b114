import logging
from datetime import datetime
from typing import Callable, Optional

from src.simple_weather.entities import Coordinate
from src.simple_weather.errors import PersistenceError
from src.simple_weather.services.record_store_async import AsyncRecordStore
from src.simple_weather.utils.geo import utc_now

logger = logging.getLogger(__name__)


class LocationCache:
    """Durable single-slot cache of the last known device coordinate.

    A stored coordinate stays valid for 24 hours. Persistence is best
    effort: store failures are logged and behave like a cache miss, they
    are never raised to callers.

    Attributes:
        record_store (AsyncRecordStore): Durable record store.
        clock (Callable[[], datetime]): Source of the current UTC time.
    """

    def __init__(
        self,
        record_store: AsyncRecordStore,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.record_store = record_store
        self.clock = clock

    async def store(self, coordinate: Coordinate) -> None:
        """Replace the cached coordinate with `coordinate`, stamped now."""
        try:
            await self.record_store.replace_cached_location(
                coordinate.latitude, coordinate.longitude, self.clock()
            )
            logger.debug(f"Cached location {coordinate.as_tuple()}")
        except PersistenceError as e:
            logger.error(f"Error caching location: {e}")

    async def retrieve(self) -> Optional[Coordinate]:
        """Return the cached coordinate, or None if missing or stale.

        A stale record found here is deleted.
        """
        try:
            record = await self.record_store.get_cached_location()
        except PersistenceError as e:
            logger.error(f"Error fetching cached location: {e}")
            return None

        if record is None:
            return None
        if record.is_stale(self.clock()):
            logger.info("Cached location is stale, evicting")
            await self.clear()
            return None
        return record.coordinate

    async def clear(self) -> None:
        try:
            await self.record_store.clear_cached_location()
        except PersistenceError as e:
            logger.error(f"Error clearing location cache: {e}")
