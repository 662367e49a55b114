from typing import Optional


class SimpleWeatherError(Exception):
    """Base class for all errors raised by this package."""


class LocationError(SimpleWeatherError):
    """Failure to determine the device location."""


class PermissionDeniedError(LocationError):
    def __init__(self, message: str = "Location access denied") -> None:
        super().__init__(message)


class PermissionRestrictedError(LocationError):
    def __init__(self, message: str = "Location access restricted") -> None:
        super().__init__(message)


class LocationUnavailableError(LocationError):
    """Transient fix failure (no signal, provider unreachable, ...)."""


class WeatherProviderError(SimpleWeatherError):
    """Network, parsing or quota failure from the weather provider."""

    def __init__(
        self, message: str, status: Optional[int] = None
    ) -> None:
        super().__init__(message)
        self.status = status


class PersistenceError(SimpleWeatherError):
    """Durable store read or write failure."""
