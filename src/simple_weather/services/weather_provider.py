from abc import ABC, abstractmethod
from typing import List

from src.simple_weather.entities import (
    Coordinate,
    CurrentConditions,
    DailyRecord,
    HourlyRecord,
)


class WeatherProvider(ABC):
    """Source of raw weather records for a coordinate.

    Records are returned as delivered by the vendor (possibly including past
    days and hours); trimming and derived fields are applied by
    `WeatherFetchCache`. Every method raises `WeatherProviderError` on
    failure.
    """

    @abstractmethod
    async def get_current(self, coordinate: Coordinate) -> CurrentConditions:
        ...

    @abstractmethod
    async def get_daily(self, coordinate: Coordinate) -> List[DailyRecord]:
        ...

    @abstractmethod
    async def get_hourly(self, coordinate: Coordinate) -> List[HourlyRecord]:
        ...
