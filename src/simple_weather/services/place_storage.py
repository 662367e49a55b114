import logging
from dataclasses import replace
from typing import List, Optional

from src.simple_weather.entities import SavedPlace
from src.simple_weather.errors import PersistenceError
from src.simple_weather.models import SavedPlaceRecord
from src.simple_weather.services.record_store_async import AsyncRecordStore

logger = logging.getLogger(__name__)


class SavedPlaceStorage:
    """User-saved places plus the memory-only current-location placeholder.

    Saved places are persisted through the record store. The
    current-location placeholder is kept in memory only and never written,
    so durable storage never accumulates stale named snapshots of where the
    device used to be. Persistence failures are logged and leave the
    in-memory list untouched.

    Attributes:
        record_store (AsyncRecordStore): Durable record store.
    """

    def __init__(self, record_store: AsyncRecordStore) -> None:
        self.record_store = record_store
        self._saved_places: List[SavedPlace] = []
        self._current_location: Optional[SavedPlace] = None

    @property
    def saved_places(self) -> List[SavedPlace]:
        return list(self._saved_places)

    @property
    def other_locations(self) -> List[SavedPlace]:
        # The placeholder is never persisted, so every saved place is "other".
        return self.saved_places

    @property
    def current_location(self) -> Optional[SavedPlace]:
        return self._current_location

    def update_current_location(self, place: SavedPlace) -> None:
        """Set the in-memory current-location placeholder."""
        self._current_location = replace(
            place, is_current_location_placeholder=True
        )

    async def load(self) -> List[SavedPlace]:
        """Drop legacy placeholder rows, then read saved places from disk."""
        try:
            await self.record_store.delete_current_location_places()
        except PersistenceError as e:
            logger.error(f"Error cleaning up current locations: {e}")
        await self._refresh()
        return self.saved_places

    async def save(self, place: SavedPlace) -> Optional[SavedPlace]:
        """Persist `place` as a regular saved place.

        The placeholder flag is forced to False. A place whose coordinate
        exactly matches an existing saved place is not saved again.

        Args:
            place (SavedPlace): Place to persist.

        Returns:
            Optional[SavedPlace]: The stored place, or None if it was a
            duplicate or the write failed.
        """
        to_save = replace(place, is_current_location_placeholder=False)
        if any(p.coordinate == to_save.coordinate for p in self._saved_places):
            logger.debug(f"Place {to_save.name} already saved, skipping")
            return None

        try:
            await self.record_store.put(SavedPlaceRecord.from_place(to_save))
        except PersistenceError as e:
            logger.error(f"Error saving place {to_save.name}: {e}")
            return None

        await self._refresh()
        return to_save

    async def remove(self, place: SavedPlace) -> None:
        try:
            await self.record_store.delete_saved_place(place.id)
        except PersistenceError as e:
            logger.error(f"Error removing place {place.name}: {e}")
            return
        await self._refresh()

    async def remove_at(self, index: int) -> None:
        places = self._saved_places
        if not 0 <= index < len(places):
            return
        await self.remove(places[index])

    async def _refresh(self) -> None:
        try:
            records = await self.record_store.list_saved_places()
        except PersistenceError as e:
            logger.error(f"Error fetching saved places: {e}")
            self._saved_places = []
            return
        self._saved_places = [r.to_place() for r in records]
