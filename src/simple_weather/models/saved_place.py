from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, Float, String
from sqlalchemy.orm import Mapped, mapped_column

from src.simple_weather.entities import Coordinate, SavedPlace
from src.simple_weather.models.base import Base


class SavedPlaceRecord(Base):
    """A user-saved place. Maps to the `saved_places` table.

    `is_current_location` exists so that rows written by older versions
    (which persisted the current-location placeholder) can be found and
    removed; new rows always store False.
    """

    __tablename__ = "saved_places"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    is_current_location: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    @classmethod
    def from_place(cls, place: SavedPlace) -> "SavedPlaceRecord":
        return cls(
            id=place.id,
            name=place.name,
            latitude=place.coordinate.latitude,
            longitude=place.coordinate.longitude,
            is_current_location=place.is_current_location_placeholder,
        )

    def to_place(self) -> SavedPlace:
        return SavedPlace(
            id=self.id,
            name=self.name,
            coordinate=Coordinate(self.latitude, self.longitude),
            is_current_location_placeholder=self.is_current_location,
        )
