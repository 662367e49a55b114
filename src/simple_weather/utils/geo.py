from datetime import datetime, timedelta, timezone

from src.simple_weather.entities import Coordinate

LOCATION_FRESHNESS = timedelta(hours=24)
WEATHER_FRESHNESS = timedelta(minutes=30)
SIGNIFICANT_MOVE_METERS = 1000.0
KEY_PRECISION = 4


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def cache_key(coordinate: Coordinate) -> str:
    """Return the weather cache key for a coordinate.

    Coordinates are quantized to four decimal places (about 11 m) so that
    GPS jitter does not produce a new key on every fix.

    Args:
        coordinate (Coordinate): Coordinate to key.

    Returns:
        str: Key formatted as "lat,lon".
    """
    # + 0.0 folds -0.0 into 0.0
    lat = round(coordinate.latitude, KEY_PRECISION) + 0.0
    lon = round(coordinate.longitude, KEY_PRECISION) + 0.0
    return f"{lat:.{KEY_PRECISION}f},{lon:.{KEY_PRECISION}f}"


def is_expired(
    recorded_at: datetime, now: datetime, window: timedelta
) -> bool:
    """Return True when more than `window` has elapsed since `recorded_at`.

    Elapsed time is one-directional: a timestamp in the future (clock moved
    backward) counts as fresh.
    """
    return now - recorded_at > window


def is_significant_move(previous: Coordinate, current: Coordinate) -> bool:
    return previous.distance_to(current) >= SIGNIFICANT_MOVE_METERS
