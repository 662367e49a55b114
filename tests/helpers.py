from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence
from unittest.mock import AsyncMock

from src.simple_weather.entities import (
    AuthorizationStatus,
    Coordinate,
    CurrentConditions,
    DailyRecord,
    HourlyRecord,
)
from src.simple_weather.services.location_provider import LocationProvider

NOW = datetime(2024, 6, 15, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Mutable clock injected wherever a component reads the time."""

    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeLocationProvider(LocationProvider):
    """LocationProvider whose fixes come from an AsyncMock."""

    def __init__(
        self,
        status: AuthorizationStatus = AuthorizationStatus.AUTHORIZED_FULL,
    ) -> None:
        super().__init__()
        self.status = status
        self.fix = AsyncMock(return_value=Coordinate(51.5074, -0.1278))
        self.authorization_requests = 0

    @property
    def authorization_status(self) -> AuthorizationStatus:
        return self.status

    async def request_one_time_fix(self) -> Coordinate:
        return await self.fix()

    async def request_authorization(self) -> None:
        self.authorization_requests += 1

    def change_authorization(self, status: AuthorizationStatus) -> None:
        self.status = status
        self._notify_authorization_change(status)


def make_current(
    observed_at: datetime = NOW, symbol: str = "cloud.rain"
) -> CurrentConditions:
    return CurrentConditions(
        observed_at=observed_at,
        temperature_c=18.0,
        feels_like_c=17.0,
        condition_description="light rain",
        condition_symbol=symbol,
        wind_speed_ms=3.5,
        humidity=0.8,
        uv_index=2,
        uv_index_category="Low",
        pressure_hpa=1012.0,
    )


def make_daily(start: datetime, days: int) -> List[DailyRecord]:
    return [
        DailyRecord(
            date=(start + timedelta(days=i)).date(),
            high_c=20.0 + i,
            low_c=10.0 + i,
            condition_symbol="cloud",
            condition_description="cloudy",
            precipitation_chance=0.1 * (i % 10),
        )
        for i in range(days)
    ]


def make_hourly(
    start: datetime, hours: int, chances: Optional[Sequence[float]] = None
) -> List[HourlyRecord]:
    return [
        HourlyRecord(
            time=start + timedelta(hours=i),
            temperature_c=15.0 + i,
            condition_symbol="cloud",
            condition_description="cloudy",
            precipitation_chance=chances[i] if chances else 0.0,
        )
        for i in range(hours)
    ]

