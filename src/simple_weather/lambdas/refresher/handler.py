import asyncio
import json
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from src.simple_weather.entities import SavedPlace, WeatherSnapshot
from src.simple_weather.services.ip_location_client_async import (
    IpLocationProvider,
)
from src.simple_weather.services.location_cache import LocationCache
from src.simple_weather.services.location_reconciler import LocationReconciler
from src.simple_weather.services.logger_service import get_logger
from src.simple_weather.services.open_weather_map_api_client_async import (
    OpenWeatherMapProvider,
)
from src.simple_weather.services.place_storage import SavedPlaceStorage
from src.simple_weather.services.record_store_async import AsyncRecordStore
from src.simple_weather.services.weather_fetch_cache import WeatherFetchCache
from src.simple_weather.session import WeatherSession
from src.simple_weather.utils.common import Settings
from src.simple_weather.utils.geo import cache_key

logger = get_logger(__name__)


async def init_services(settings: Settings) -> WeatherSession:
    """Build the record store, providers and caches, wired into a session.

    The record store schema is created here; a store that cannot be
    initialised is the one failure treated as fatal.

    Args:
        settings (Settings): Runtime configuration.

    Returns:
        WeatherSession: Session ready for `start()`.

    Raises:
        PersistenceError: If the record store schema cannot be created.
    """
    record_store = AsyncRecordStore(settings.db_url)
    await record_store.create_schema()

    reconciler = LocationReconciler(
        IpLocationProvider(settings.ip_location_url),
        LocationCache(record_store),
    )
    weather = WeatherFetchCache(
        OpenWeatherMapProvider(settings.api_url, settings.api_key)
    )
    places = SavedPlaceStorage(record_store)

    logger.info("✅ All async services initialized successfully")
    return WeatherSession(reconciler, weather, places)


def serialize_snapshot(
    snapshot: Optional[WeatherSnapshot],
) -> Optional[Dict[str, Any]]:
    if snapshot is None:
        return None
    return asdict(snapshot)


def summarize_places(
    places: List[SavedPlace], results: Dict[str, WeatherSnapshot]
) -> List[Dict[str, Any]]:
    """Build one result entry per saved place.

    Each entry holds the place `name` and `key` plus either the serialized
    `weather` or an `error` marker for places whose fetch failed.
    """
    summary: List[Dict[str, Any]] = []
    for place in places:
        key = cache_key(place.coordinate)
        snapshot = results.get(key)
        if snapshot is None:
            summary.append(
                {"name": place.name, "key": key, "error": "unavailable"}
            )
        else:
            summary.append(
                {
                    "name": place.name,
                    "key": key,
                    "weather": serialize_snapshot(snapshot),
                }
            )
    return summary


async def refresh_session(
    session: WeatherSession, timeout: float
) -> Dict[str, Any]:
    """Resolve the current location and refresh every place's weather.

    Args:
        session (WeatherSession): Started session.
        timeout (float): Ceiling in seconds for the location fix.

    Returns:
        Dict[str, Any]: Current place, its weather (or error) and the
        per-saved-place results.
    """
    place = await session.initialize_default_location(timeout)
    current: Optional[WeatherSnapshot] = None
    if place is not None:
        current = await session.refresh_weather(place, force=True)

    results = await session.refresh_all_saved_places()
    logger.info(f"🌍 Refreshed {len(results)} saved places")

    return {
        "current_location": (
            {"name": place.name, "key": cache_key(place.coordinate)}
            if place is not None
            else None
        ),
        "current_weather": serialize_snapshot(current),
        "location_error": (
            str(session.location_error) if session.location_error else None
        ),
        "weather_error": (
            str(session.weather_error) if session.weather_error else None
        ),
        "saved_places": summarize_places(
            session.places.saved_places, results
        ),
    }


async def async_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Asynchronous entrypoint refreshing current and saved-place weather.

    Args:
        event (Dict[str, Any]): Invocation payload; an optional
            `location_timeout` overrides the configured ceiling.
        context (Any): Invocation context (unused here).

    Returns:
        Dict[str, Any]: Response with `statusCode` and JSON `body`.
    """
    try:
        settings = Settings.from_env()
        session = await init_services(settings)
        await session.start()

        timeout = float(
            event.get("location_timeout", settings.location_timeout_seconds)
        )
        body = await refresh_session(session, timeout)

        return {
            "statusCode": 200,
            "body": json.dumps(body, ensure_ascii=False, default=str),
        }
    except Exception as e:
        logger.exception(f"🔥 Handler failed: {e}")
        return {
            "statusCode": 500,
            "body": json.dumps({"error": str(e)}),
        }


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Synchronous entrypoint that bridges to the async handler.

    Args:
        event (Dict[str, Any]): Invocation payload.
        context (Any): Invocation context.

    Returns:
        Dict[str, Any]: Response as produced by `async_handler`.
    """
    return asyncio.run(async_handler(event, context))
