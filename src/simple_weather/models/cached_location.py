from datetime import datetime, timedelta, timezone

from sqlalchemy import DateTime, Float, Integer
from sqlalchemy.orm import Mapped, mapped_column

from src.simple_weather.entities import Coordinate
from src.simple_weather.models.base import Base
from src.simple_weather.utils.geo import LOCATION_FRESHNESS, is_expired


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from backends like SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class CachedLocationRecord(Base):
    """The single most recent device location.

    The table holds at most one row; storing a new location deletes the
    previous one first. Maps to the `cached_locations` table.

    Attributes:
        id (int): Primary key.
        latitude (float): Latitude in decimal degrees.
        longitude (float): Longitude in decimal degrees.
        captured_at (datetime): When the fix was stored (UTC).
    """

    __tablename__ = "cached_locations"

    id: Mapped[int] = mapped_column(
        Integer, primary_key=True, autoincrement=True
    )
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    captured_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(self.latitude, self.longitude)

    def is_stale(
        self, now: datetime, window: timedelta = LOCATION_FRESHNESS
    ) -> bool:
        return is_expired(as_utc(self.captured_at), now, window)
