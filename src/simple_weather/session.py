import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Set

from src.simple_weather.entities import (
    Coordinate,
    CurrentConditions,
    DailyRecord,
    HourlyRecord,
    SavedPlace,
    WeatherSnapshot,
)
from src.simple_weather.services.location_reconciler import LocationReconciler
from src.simple_weather.services.place_storage import SavedPlaceStorage
from src.simple_weather.services.weather_fetch_cache import WeatherFetchCache
from src.simple_weather.utils.common import DEFAULT_LOCATION_TIMEOUT_SECONDS
from src.simple_weather.utils.geo import cache_key

logger = logging.getLogger(__name__)

CURRENT_LOCATION_NAME = "Current Location"

NameResolver = Callable[[Coordinate], Awaitable[str]]


class WeatherSession:
    """Composition root exposing location and weather state to a UI shell.

    The session owns no state of its own beyond its background refresh
    tasks; it forwards to the reconciler, the weather cache and the saved
    place storage it was constructed with. Construct it once per process
    and pass it around explicitly.

    Attributes:
        reconciler (LocationReconciler): Current-location owner.
        weather (WeatherFetchCache): Weather cache and displayed weather.
        places (SavedPlaceStorage): Saved places and current placeholder.
        name_resolver (Optional[NameResolver]): Reverse geocoder used to
            name the current-location placeholder.
    """

    def __init__(
        self,
        reconciler: LocationReconciler,
        weather: WeatherFetchCache,
        places: SavedPlaceStorage,
        name_resolver: Optional[NameResolver] = None,
    ) -> None:
        self.reconciler = reconciler
        self.weather = weather
        self.places = places
        self.name_resolver = name_resolver
        self._background_refresh: Optional[
            "asyncio.Task[Optional[WeatherSnapshot]]"
        ] = None
        self._background_tasks: Set[
            "asyncio.Task[Optional[WeatherSnapshot]]"
        ] = set()

    @property
    def current_location(self) -> Optional[Coordinate]:
        return self.reconciler.current_location

    @property
    def is_loading_location(self) -> bool:
        return self.reconciler.is_loading

    @property
    def location_error(self) -> Optional[Exception]:
        return self.reconciler.location_error

    @property
    def current_weather(self) -> Optional[CurrentConditions]:
        return self.weather.current_weather

    @property
    def daily_forecast(self) -> Optional[List[DailyRecord]]:
        return self.weather.daily_forecast

    @property
    def hourly_forecast(self) -> Optional[List[HourlyRecord]]:
        return self.weather.hourly_forecast

    @property
    def is_loading_weather(self) -> bool:
        return self.weather.is_loading

    @property
    def weather_error(self) -> Optional[Exception]:
        return self.weather.weather_error

    async def start(self) -> None:
        await self.places.load()
        await self.reconciler.start()

    async def request_location_permission(self) -> None:
        await self.reconciler.request_location_permission()

    async def request_fresh_location(self) -> Optional[Coordinate]:
        """Request a live fix and update the current-location placeholder."""
        await self.reconciler.request_location()
        coordinate = self.reconciler.current_location
        if coordinate is not None:
            await self._update_current_place(coordinate)
        return coordinate

    async def initialize_default_location(
        self, timeout: float = DEFAULT_LOCATION_TIMEOUT_SECONDS
    ) -> Optional[SavedPlace]:
        """Resolve the place to show first.

        Uses the in-memory placeholder if one exists, else the reconciler's
        location (cached or live). Otherwise permission is requested and a
        fix awaited for at most `timeout` seconds.

        Returns:
            Optional[SavedPlace]: The current-location placeholder, or None
            when no location could be determined in time.
        """
        if self.places.current_location is not None:
            return self.places.current_location

        coordinate = self.reconciler.current_location
        if coordinate is None:
            loop = asyncio.get_running_loop()
            deadline = loop.time() + timeout
            permission = asyncio.create_task(
                self.reconciler.request_location_permission()
            )
            try:
                await asyncio.wait_for(asyncio.shield(permission), timeout)
            except asyncio.TimeoutError:
                logger.warning(f"No location fix within {timeout}s")
            else:
                # Permission prompts answer through a callback; keep waiting.
                await self.reconciler.wait_for_location(
                    max(0.0, deadline - loop.time())
                )
            coordinate = self.reconciler.current_location

        if coordinate is None:
            logger.warning("No location available for default place")
            return None
        return await self._update_current_place(coordinate)

    async def refresh_weather(
        self, place: Optional[SavedPlace] = None, force: bool = False
    ) -> Optional[WeatherSnapshot]:
        """Run the interactive weather fetch for `place`.

        Defaults to the current-location placeholder, then to the raw
        current coordinate.
        """
        coordinate = self._coordinate_for(place)
        if coordinate is None:
            logger.info("No location to refresh weather for")
            return None
        return await self.weather.refresh(coordinate, force=force)

    async def fetch_weather_if_needed(self) -> Optional[WeatherSnapshot]:
        """Refresh displayed weather for the current location.

        With a cached location the refresh runs in the background and None
        is returned at once; with a live location it is awaited.
        """
        coordinate = self.reconciler.current_location
        if coordinate is None:
            return None
        if self.reconciler.did_use_cached_location:
            task = asyncio.create_task(
                self.weather.refresh(coordinate, force=True)
            )
            self._background_tasks.add(task)
            task.add_done_callback(self._background_tasks.discard)
            self._background_refresh = task
            return None
        return await self.weather.refresh(coordinate, force=True)

    async def wait_for_background_refresh(self) -> Optional[WeatherSnapshot]:
        """Wait for every pending background refresh.

        Returns:
            Optional[WeatherSnapshot]: Result of the most recent one.
        """
        if self._background_tasks:
            await asyncio.gather(*self._background_tasks)
        if self._background_refresh is None:
            return None
        return await self._background_refresh

    async def refresh_all_saved_places(
        self, force: bool = True
    ) -> Dict[str, WeatherSnapshot]:
        """Refresh weather for every saved place concurrently.

        Returns:
            Dict[str, WeatherSnapshot]: Snapshots keyed by cache key; places
            whose fetch failed are absent.
        """
        places = self.places.saved_places
        return await self.weather.fetch_batch(
            [p.coordinate for p in places], force=force
        )

    def cached_weather_for(
        self, place: SavedPlace
    ) -> Optional[WeatherSnapshot]:
        return self.weather.get_cached(place.coordinate)

    async def _update_current_place(
        self, coordinate: Coordinate
    ) -> SavedPlace:
        name = CURRENT_LOCATION_NAME
        if self.name_resolver is not None:
            try:
                name = await self.name_resolver(coordinate)
            except Exception as e:
                logger.warning(
                    f"Failed to resolve name for {cache_key(coordinate)}: {e}"
                )
        place = SavedPlace(
            name=name,
            coordinate=coordinate,
            is_current_location_placeholder=True,
        )
        self.places.update_current_location(place)
        return place

    def _coordinate_for(
        self, place: Optional[SavedPlace]
    ) -> Optional[Coordinate]:
        if place is not None:
            return place.coordinate
        if self.places.current_location is not None:
            return self.places.current_location.coordinate
        return self.reconciler.current_location
