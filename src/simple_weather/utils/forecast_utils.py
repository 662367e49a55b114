from dataclasses import replace
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, Optional

from src.simple_weather.entities import (
    CurrentConditions,
    DailyRecord,
    HourlyRecord,
)

MAX_DAILY_RECORDS = 7
MAX_HOURLY_RECORDS = 12

_FILLED_SYMBOLS = {
    "sun.max": "sun.max.fill",
    "sun.min": "sun.min.fill",
    "cloud": "cloud.fill",
    "cloud.sun": "cloud.sun.fill",
    "cloud.moon": "cloud.moon.fill",
    "cloud.rain": "cloud.rain.fill",
    "cloud.drizzle": "cloud.drizzle.fill",
    "cloud.heavyrain": "cloud.heavyrain.fill",
    "cloud.snow": "cloud.snow.fill",
    "cloud.sleet": "cloud.sleet.fill",
    "cloud.hail": "cloud.hail.fill",
    "cloud.bolt": "cloud.bolt.fill",
    "cloud.bolt.rain": "cloud.bolt.rain.fill",
    "smoke": "smoke.fill",
    "moon": "moon.fill",
    "moon.stars": "moon.stars.fill",
}


def start_of_day(now: datetime) -> datetime:
    """Return midnight of `now`'s day, in `now`'s timezone."""
    return datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)


def end_of_day(now: datetime) -> datetime:
    """Return the first instant of the following day."""
    return start_of_day(now) + timedelta(days=1)


def location_time(now: datetime, current: CurrentConditions) -> datetime:
    """Express `now` in the timezone the provider reported `current` in.

    "Today" for trimming is the location's own calendar day, so the
    clock's instant is converted to the observation's timezone. A naive
    `observed_at` leaves `now` unchanged.
    """
    tz = current.observed_at.tzinfo
    if tz is None or now.tzinfo is None:
        return now
    return now.astimezone(tz)


def filled_symbol_name(symbol: str) -> str:
    """Map a condition symbol to its filled variant.

    Unknown symbols, and symbols that are already filled, are returned
    unchanged.
    """
    return _FILLED_SYMBOLS.get(symbol, symbol)


def uv_index_category(uv_index: float) -> str:
    if uv_index < 3:
        return "Low"
    if uv_index < 6:
        return "Moderate"
    if uv_index < 8:
        return "High"
    if uv_index < 11:
        return "Very High"
    return "Extreme"


def remaining_hours_today(
    hourly: Iterable[HourlyRecord], now: datetime
) -> List[HourlyRecord]:
    """Return hourly records between `now` and the end of today, sorted."""
    end = end_of_day(now)
    return sorted(
        (h for h in hourly if now <= h.time <= end), key=lambda h: h.time
    )


def precipitation_chance_today(
    hourly: Iterable[HourlyRecord], now: datetime
) -> Optional[float]:
    """Return the highest precipitation chance for the rest of today.

    The maximum (not the mean) of the remaining hours is used so that a
    single rainy hour is never averaged away.

    Args:
        hourly (Iterable[HourlyRecord]): Provider hourly forecast.
        now (datetime): Current time; its timezone defines "today".

    Returns:
        Optional[float]: Highest chance in [0, 1], or None when no hours of
        today remain in the forecast.
    """
    remaining = remaining_hours_today(hourly, now)
    if not remaining:
        return None
    return max(h.precipitation_chance for h in remaining)


def trim_daily(
    daily: Iterable[DailyRecord],
    now: datetime,
    precipitation_today: Optional[float] = None,
) -> List[DailyRecord]:
    """Keep the first seven days starting today, in chronological order.

    Today's record additionally carries `precipitation_today`.
    """
    today: date = now.date()
    kept = sorted((d for d in daily if d.date >= today), key=lambda d: d.date)
    return [
        replace(d, precipitation_chance_today=precipitation_today)
        if d.date == today
        else d
        for d in kept[:MAX_DAILY_RECORDS]
    ]


def trim_hourly(
    hourly: Iterable[HourlyRecord], now: datetime
) -> List[HourlyRecord]:
    """Keep at most twelve hourly records from now until the end of today."""
    return remaining_hours_today(hourly, now)[:MAX_HOURLY_RECORDS]


def enrich_current(
    current: CurrentConditions,
    daily: Iterable[DailyRecord],
    hourly: Iterable[HourlyRecord],
    now: datetime,
) -> CurrentConditions:
    """Attach today's precipitation chances to the current conditions.

    `precipitation_chance` is today's value from the daily forecast and
    `precipitation_chance_today` the worst remaining hour of today.
    """
    today = now.date()
    today_record = next((d for d in daily if d.date == today), None)
    return replace(
        current,
        condition_symbol=filled_symbol_name(current.condition_symbol),
        precipitation_chance=(
            today_record.precipitation_chance
            if today_record is not None
            else current.precipitation_chance
        ),
        precipitation_chance_today=precipitation_chance_today(hourly, now),
    )
