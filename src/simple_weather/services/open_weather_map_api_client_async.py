import ssl
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Dict, List
from urllib.parse import urlencode

import aiohttp
import certifi
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.simple_weather.entities import (
    Coordinate,
    CurrentConditions,
    DailyRecord,
    HourlyRecord,
)
from src.simple_weather.errors import WeatherProviderError
from src.simple_weather.services.weather_provider import WeatherProvider
from src.simple_weather.utils.forecast_utils import uv_index_category

ONECALL_PARTS = ("current", "minutely", "hourly", "daily", "alerts")

_ICON_SYMBOLS = {
    "01d": "sun.max",
    "01n": "moon.stars",
    "02d": "cloud.sun",
    "02n": "cloud.moon",
    "03": "cloud",
    "04": "cloud",
    "09": "cloud.drizzle",
    "10": "cloud.rain",
    "11": "cloud.bolt.rain",
    "13": "cloud.snow",
    "50": "cloud.fog",
}


def icon_to_symbol(icon: str) -> str:
    """Translate an OpenWeatherMap icon code (e.g. "10d") to a symbol name."""
    return _ICON_SYMBOLS.get(icon) or _ICON_SYMBOLS.get(icon[:2], "cloud")


def _timestamp(value: Any, tz: tzinfo = timezone.utc) -> datetime:
    return datetime.fromtimestamp(int(value), tz=tz)


def location_timezone(data: Dict[str, Any]) -> tzinfo:
    """Return the fixed-offset timezone of a One Call response."""
    return timezone(timedelta(seconds=int(data.get("timezone_offset", 0))))


def _condition(item: Dict[str, Any]) -> Dict[str, str]:
    weather = (item.get("weather") or [{}])[0]
    return {
        "description": str(weather.get("description", "")),
        "symbol": icon_to_symbol(str(weather.get("icon", ""))),
    }


def parse_current(data: Dict[str, Any]) -> CurrentConditions:
    """Build CurrentConditions from a One Call response's `current` block."""
    current = data["current"]
    condition = _condition(current)
    uvi = float(current.get("uvi", 0.0))
    rain = current.get("rain") or {}
    return CurrentConditions(
        observed_at=_timestamp(current["dt"], location_timezone(data)),
        temperature_c=float(current["temp"]),
        feels_like_c=float(current["feels_like"]),
        condition_description=condition["description"],
        condition_symbol=condition["symbol"],
        wind_speed_ms=float(current.get("wind_speed", 0.0)),
        wind_direction_deg=current.get("wind_deg"),
        humidity=float(current.get("humidity", 0)) / 100.0,
        uv_index=int(round(uvi)),
        uv_index_category=uv_index_category(uvi),
        pressure_hpa=float(current["pressure"]),
        precipitation_intensity_mmh=rain.get("1h"),
    )


def parse_daily(data: Dict[str, Any]) -> List[DailyRecord]:
    """Build DailyRecords from a One Call response's `daily` block.

    Dates are taken in the location's own timezone (`timezone_offset`).
    """
    tz = location_timezone(data)
    records: List[DailyRecord] = []
    for day in data["daily"]:
        condition = _condition(day)
        records.append(
            DailyRecord(
                date=_timestamp(day["dt"], tz).date(),
                high_c=float(day["temp"]["max"]),
                low_c=float(day["temp"]["min"]),
                condition_symbol=condition["symbol"],
                condition_description=condition["description"],
                precipitation_chance=float(day.get("pop", 0.0)),
            )
        )
    return records


def parse_hourly(data: Dict[str, Any]) -> List[HourlyRecord]:
    tz = location_timezone(data)
    records: List[HourlyRecord] = []
    for hour in data["hourly"]:
        condition = _condition(hour)
        records.append(
            HourlyRecord(
                time=_timestamp(hour["dt"], tz),
                temperature_c=float(hour["temp"]),
                condition_symbol=condition["symbol"],
                condition_description=condition["description"],
                precipitation_chance=float(hour.get("pop", 0.0)),
            )
        )
    return records


class OpenWeatherMapProvider(WeatherProvider):
    """Async WeatherProvider backed by the OpenWeatherMap One Call API.

    Each public method requests only the part of the One Call response it
    needs. Transient client errors are retried with exponential backoff;
    anything still failing is raised as `WeatherProviderError`.

    Attributes:
        api_url (str): Base URL of the One Call API (e.g. .../data/3.0).
        api_key (str): API key used for authenticating requests.
    """

    def __init__(self, api_url: str, api_key: str):
        self.api_url = api_url
        self.api_key = api_key

    def build_onecall_url(
        self, coordinate: Coordinate, include: str
    ) -> str:
        """Build the One Call endpoint URL returning only `include`.

        Args:
            coordinate (Coordinate): Location to query.
            include (str): One of "current", "hourly" or "daily".

        Returns:
            str: Fully formed URL ready to be fetched.
        """
        params = {
            "lat": coordinate.latitude,
            "lon": coordinate.longitude,
            "appid": self.api_key,
            "units": "metric",
            "lang": "en",
            "exclude": ",".join(p for p in ONECALL_PARTS if p != include),
        }
        return f"{self.api_url}/onecall?{urlencode(params)}"

    @retry(
        retry=retry_if_exception_type(aiohttp.ClientError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )  # type: ignore[misc]
    async def _get_json(self, url: str) -> Dict[str, Any]:
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        timeout = aiohttp.ClientTimeout(total=10)

        async with aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(ssl=ssl_context),
            timeout=timeout,
        ) as session:
            async with session.get(url) as response:
                response.raise_for_status()
                data = await response.json()

                if not isinstance(data, dict):
                    raise WeatherProviderError(
                        f"Expected dict from API, got {type(data)}"
                    )

                return data

    async def _fetch(
        self, coordinate: Coordinate, include: str
    ) -> Dict[str, Any]:
        url = self.build_onecall_url(coordinate, include)
        try:
            return await self._get_json(url)
        except aiohttp.ClientResponseError as e:
            raise WeatherProviderError(
                f"OpenWeatherMap returned {e.status} for {include}",
                status=e.status,
            ) from e
        except aiohttp.ClientError as e:
            raise WeatherProviderError(
                f"OpenWeatherMap request for {include} failed: {e}"
            ) from e

    async def get_current(self, coordinate: Coordinate) -> CurrentConditions:
        data = await self._fetch(coordinate, "current")
        try:
            return parse_current(data)
        except (KeyError, TypeError, ValueError) as e:
            raise WeatherProviderError(f"Malformed current block: {e}") from e

    async def get_daily(self, coordinate: Coordinate) -> List[DailyRecord]:
        data = await self._fetch(coordinate, "daily")
        try:
            return parse_daily(data)
        except (KeyError, TypeError, ValueError) as e:
            raise WeatherProviderError(f"Malformed daily block: {e}") from e

    async def get_hourly(self, coordinate: Coordinate) -> List[HourlyRecord]:
        data = await self._fetch(coordinate, "hourly")
        try:
            return parse_hourly(data)
        except (KeyError, TypeError, ValueError) as e:
            raise WeatherProviderError(f"Malformed hourly block: {e}") from e
