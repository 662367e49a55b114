import asyncio
import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from src.simple_weather.entities import (
    Coordinate,
    CurrentConditions,
    DailyRecord,
    HourlyRecord,
    WeatherSnapshot,
)
from src.simple_weather.errors import WeatherProviderError
from src.simple_weather.services.weather_provider import WeatherProvider
from src.simple_weather.utils.forecast_utils import (
    enrich_current,
    location_time,
    precipitation_chance_today,
    trim_daily,
    trim_hourly,
)
from src.simple_weather.utils.geo import WEATHER_FRESHNESS, cache_key, utc_now
from src.simple_weather.utils.observable import Observable

logger = logging.getLogger(__name__)


class FetchState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    SUCCESS = "success"
    FAILED = "failed"


class WeatherFetchCache(Observable):
    """Per-coordinate in-memory cache of weather snapshots.

    Snapshots are keyed by `cache_key(coordinate)` and served without a
    provider call while younger than the freshness window (30 minutes by
    default). Stale entries are evicted lazily when read. At most one
    provider round-trip per key is in flight; concurrent callers for the
    same key share it.

    Besides the cache, the instance holds the state of the interactive
    (displayed) fetch: `current_weather`, `daily_forecast`,
    `hourly_forecast`, `weather_error` and `state`. Entering LOADING clears
    all of them, and a failed fetch leaves them empty rather than showing
    older data next to an error. The cache itself is never cleared by a
    failure.

    Attributes:
        provider (WeatherProvider): Source of weather records.
        clock (Callable[[], datetime]): Source of the current time. It is
            converted to the timezone of the provider's observation time,
            which defines "today" for trimming.
        freshness (timedelta): How long a snapshot is served from cache.
    """

    def __init__(
        self,
        provider: WeatherProvider,
        clock: Callable[[], datetime] = utc_now,
        freshness: timedelta = WEATHER_FRESHNESS,
    ) -> None:
        super().__init__()
        self.provider = provider
        self.clock = clock
        self.freshness = freshness
        self._snapshots: Dict[str, WeatherSnapshot] = {}
        self._in_flight: Dict[str, "asyncio.Task[WeatherSnapshot]"] = {}
        self._generation = 0

        self.state = FetchState.IDLE
        self.current_weather: Optional[CurrentConditions] = None
        self.daily_forecast: Optional[List[DailyRecord]] = None
        self.hourly_forecast: Optional[List[HourlyRecord]] = None
        self.weather_error: Optional[Exception] = None

    @property
    def is_loading(self) -> bool:
        return self.state is FetchState.LOADING

    def get_cached(self, coordinate: Coordinate) -> Optional[WeatherSnapshot]:
        """Return the fresh cached snapshot for `coordinate`, if any.

        A snapshot older than the freshness window is removed and None is
        returned.
        """
        key = cache_key(coordinate)
        snapshot = self._snapshots.get(key)
        if snapshot is None:
            return None
        if self.clock() - snapshot.last_updated > self.freshness:
            logger.debug(f"Evicting stale weather for {key}")
            del self._snapshots[key]
            return None
        return snapshot

    async def fetch(
        self, coordinate: Coordinate, force: bool = False
    ) -> WeatherSnapshot:
        """Return weather for `coordinate`, from cache when fresh.

        Args:
            coordinate (Coordinate): Location to fetch.
            force (bool): Skip the cache lookup and always hit the provider
                (an already in-flight request for the key is still reused).

        Returns:
            WeatherSnapshot: Trimmed snapshot for the coordinate's key.

        Raises:
            WeatherProviderError: If any of the three provider requests
                fails.
        """
        key = cache_key(coordinate)
        if not force:
            cached = self.get_cached(coordinate)
            if cached is not None:
                logger.debug(f"Serving cached weather for {key}")
                return cached

        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.create_task(self._load(key, coordinate))
            self._in_flight[key] = task
        return await asyncio.shield(task)

    async def fetch_batch(
        self, coordinates: Iterable[Coordinate], force: bool = False
    ) -> Dict[str, WeatherSnapshot]:
        """Fetch weather for many coordinates concurrently.

        Failures are logged and the failing coordinate is omitted from the
        result; they are never raised.

        Args:
            coordinates (Iterable[Coordinate]): Locations to fetch.
            force (bool): Passed through to `fetch`.

        Returns:
            Dict[str, WeatherSnapshot]: Snapshots keyed by cache key, for
            the coordinates that succeeded.
        """
        coordinates = list(coordinates)
        raw_results = await asyncio.gather(
            *(self.fetch(c, force=force) for c in coordinates),
            return_exceptions=True,
        )

        results: Dict[str, WeatherSnapshot] = {}
        for coordinate, r in zip(coordinates, raw_results):
            key = cache_key(coordinate)
            if isinstance(r, BaseException):
                logger.error(f"Failed to fetch weather for {key}: {r}")
            else:
                results[key] = r

        logger.info(
            f"Fetched weather for {len(results)}/{len(coordinates)} locations"
        )
        return results

    async def refresh(
        self, coordinate: Coordinate, force: bool = False
    ) -> Optional[WeatherSnapshot]:
        """Run the interactive fetch for the displayed location.

        Only the most recent call publishes its outcome; a slower, older
        call finishing later is discarded.

        Returns:
            Optional[WeatherSnapshot]: The published snapshot, or None on
            failure or when superseded.
        """
        self._generation += 1
        generation = self._generation
        self.state = FetchState.LOADING
        self.current_weather = None
        self.daily_forecast = None
        self.hourly_forecast = None
        self.weather_error = None
        self._publish()

        try:
            snapshot = await self.fetch(coordinate, force=force)
        except WeatherProviderError as e:
            if generation != self._generation:
                return None
            logger.error(
                f"Failed to fetch weather for {cache_key(coordinate)}: {e}"
            )
            self.weather_error = e
            self.state = FetchState.FAILED
            self._publish()
            return None

        if generation != self._generation:
            return None
        self.current_weather = snapshot.current
        self.daily_forecast = list(snapshot.daily)
        self.hourly_forecast = list(snapshot.hourly)
        self.state = FetchState.SUCCESS
        self._publish()
        return snapshot

    async def _load(self, key: str, coordinate: Coordinate) -> WeatherSnapshot:
        try:
            requested_at = self.clock()
            calls: List["asyncio.Future[Any]"] = [
                asyncio.ensure_future(self.provider.get_current(coordinate)),
                asyncio.ensure_future(self.provider.get_daily(coordinate)),
                asyncio.ensure_future(self.provider.get_hourly(coordinate)),
            ]
            try:
                current, daily, hourly = await asyncio.gather(*calls)
            except Exception as e:
                for call in calls:
                    call.cancel()
                if isinstance(e, WeatherProviderError):
                    raise
                raise WeatherProviderError(str(e)) from e

            now = location_time(requested_at, current)
            snapshot = WeatherSnapshot(
                current=enrich_current(current, daily, hourly, now),
                daily=tuple(
                    trim_daily(
                        daily, now, precipitation_chance_today(hourly, now)
                    )
                ),
                hourly=tuple(trim_hourly(hourly, now)),
                last_updated=requested_at,
            )
            logger.info(f"Fetched fresh weather for {key}")
            return self._store(key, snapshot)
        finally:
            self._in_flight.pop(key, None)

    def _store(self, key: str, snapshot: WeatherSnapshot) -> WeatherSnapshot:
        existing = self._snapshots.get(key)
        if (
            existing is not None
            and existing.last_updated > snapshot.last_updated
        ):
            logger.debug(f"Keeping newer cached weather for {key}")
            return existing
        self._snapshots[key] = snapshot
        return snapshot
