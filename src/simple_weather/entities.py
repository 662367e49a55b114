from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional, Tuple

EARTH_RADIUS_M = 6_371_008.8


@dataclass(frozen=True)
class Coordinate:
    """Geographic coordinate in decimal degrees (WGS84)."""

    latitude: float
    longitude: float

    def distance_to(self, other: "Coordinate") -> float:
        """Return the great-circle distance to `other` in metres.

        Uses the haversine formula on a spherical earth with the mean
        radius, which is accurate to well under 0.5% for the short
        distances this package compares.

        Args:
            other (Coordinate): Target coordinate.

        Returns:
            float: Distance in metres.
        """
        lat1 = math.radians(self.latitude)
        lat2 = math.radians(other.latitude)
        dlat = lat2 - lat1
        dlon = math.radians(other.longitude - self.longitude)
        a = (
            math.sin(dlat / 2) ** 2
            + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
        )
        return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))

    def as_tuple(self) -> Tuple[float, float]:
        return self.latitude, self.longitude


class LocationSource(str, Enum):
    CACHED = "cached"
    LIVE = "live"


class AuthorizationStatus(str, Enum):
    """Location permission as reported by a LocationProvider."""

    NOT_DETERMINED = "notDetermined"
    DENIED = "denied"
    RESTRICTED = "restricted"
    AUTHORIZED_LIMITED = "authorizedLimited"
    AUTHORIZED_FULL = "authorizedFull"

    @property
    def is_authorized(self) -> bool:
        return self in (
            AuthorizationStatus.AUTHORIZED_LIMITED,
            AuthorizationStatus.AUTHORIZED_FULL,
        )


@dataclass(frozen=True)
class ResolvedLocation:
    """The reconciler's current location and where it came from."""

    coordinate: Coordinate
    source: LocationSource
    captured_at: datetime


@dataclass(frozen=True)
class SavedPlace:
    """A user-saved place, or the synthesized current-location placeholder.

    Attributes:
        name (str): Display name.
        coordinate (Coordinate): Position of the place.
        is_current_location_placeholder (bool): True only for the in-memory
            "current location" entry; never persisted as True.
        id (str): Stable identifier (uuid4 hex string by default).
    """

    name: str
    coordinate: Coordinate
    is_current_location_placeholder: bool = False
    id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass(frozen=True)
class CurrentConditions:
    """Normalized current conditions.

    Units: temperatures in Celsius, wind in metres per second, pressure in
    hectopascal, precipitation intensity in millimetres per hour. Chances
    and humidity are fractions in [0, 1]. `observed_at` is expressed in the
    location's own timezone.
    """

    observed_at: datetime
    temperature_c: float
    feels_like_c: float
    condition_description: str
    condition_symbol: str
    wind_speed_ms: float
    humidity: float
    uv_index: int
    uv_index_category: str
    pressure_hpa: float
    wind_direction_deg: Optional[float] = None
    precipitation_intensity_mmh: Optional[float] = None
    precipitation_chance: Optional[float] = None
    precipitation_chance_today: Optional[float] = None


@dataclass(frozen=True)
class DailyRecord:
    date: date
    high_c: float
    low_c: float
    condition_symbol: str
    condition_description: str
    precipitation_chance: float
    precipitation_chance_today: Optional[float] = None


@dataclass(frozen=True)
class HourlyRecord:
    time: datetime
    temperature_c: float
    condition_symbol: str
    condition_description: str
    precipitation_chance: float


@dataclass(frozen=True)
class WeatherSnapshot:
    """Combined weather data for one cache key.

    `daily` and `hourly` are always sorted ascending by date/time.
    """

    current: CurrentConditions
    daily: Tuple[DailyRecord, ...]
    hourly: Tuple[HourlyRecord, ...]
    last_updated: datetime


__all__ = [
    "AuthorizationStatus",
    "Coordinate",
    "CurrentConditions",
    "DailyRecord",
    "HourlyRecord",
    "LocationSource",
    "ResolvedLocation",
    "SavedPlace",
    "WeatherSnapshot",
]
