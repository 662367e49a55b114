from abc import ABC, abstractmethod
from typing import Callable, List

from src.simple_weather.entities import AuthorizationStatus, Coordinate

AuthorizationCallback = Callable[[AuthorizationStatus], None]


class LocationProvider(ABC):
    """Source of device coordinates.

    Implementations deliver one-time fixes asynchronously and report
    permission changes to registered callbacks.
    """

    def __init__(self) -> None:
        self._authorization_callbacks: List[AuthorizationCallback] = []

    @property
    @abstractmethod
    def authorization_status(self) -> AuthorizationStatus:
        """Current location permission."""

    @abstractmethod
    async def request_one_time_fix(self) -> Coordinate:
        """Return the current coordinate.

        Raises:
            LocationError: If no fix can be obtained.
        """

    async def request_authorization(self) -> None:
        """Ask the user for permission; the result arrives via callbacks."""

    def on_authorization_change(self, callback: AuthorizationCallback) -> None:
        self._authorization_callbacks.append(callback)

    def _notify_authorization_change(
        self, status: AuthorizationStatus
    ) -> None:
        for callback in list(self._authorization_callbacks):
            callback(status)
