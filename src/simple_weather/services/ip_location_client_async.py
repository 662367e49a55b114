import ssl
from typing import Any, Dict

import aiohttp
import certifi
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.simple_weather.entities import AuthorizationStatus, Coordinate
from src.simple_weather.errors import LocationUnavailableError
from src.simple_weather.services.location_provider import LocationProvider


class IpLocationProvider(LocationProvider):
    """LocationProvider that resolves the device position from its IP.

    Intended for hosts without positioning hardware. IP geolocation is
    coarse, so the provider reports `AUTHORIZED_LIMITED` when enabled and
    `DENIED` when disabled.

    Attributes:
        api_url (str): Geolocation endpoint returning JSON with `latitude`
            and `longitude` keys.
    """

    def __init__(self, api_url: str, enabled: bool = True) -> None:
        super().__init__()
        self.api_url = api_url
        self._status = (
            AuthorizationStatus.AUTHORIZED_LIMITED
            if enabled
            else AuthorizationStatus.DENIED
        )

    @property
    def authorization_status(self) -> AuthorizationStatus:
        return self._status

    async def request_authorization(self) -> None:
        self._notify_authorization_change(self._status)

    def set_enabled(self, enabled: bool) -> None:
        """Grant or revoke lookups and notify listeners of the change."""
        status = (
            AuthorizationStatus.AUTHORIZED_LIMITED
            if enabled
            else AuthorizationStatus.DENIED
        )
        if status is not self._status:
            self._status = status
            self._notify_authorization_change(status)

    @retry(
        retry=retry_if_exception_type(aiohttp.ClientError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=8),
        reraise=True,
    )  # type: ignore[misc]
    async def _get_json(self) -> Dict[str, Any]:
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        timeout = aiohttp.ClientTimeout(total=10)

        async with aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(ssl=ssl_context),
            timeout=timeout,
        ) as session:
            async with session.get(self.api_url) as response:
                response.raise_for_status()
                data = await response.json()

                if not isinstance(data, dict):
                    raise LocationUnavailableError(
                        f"Expected dict from geolocation API, got {type(data)}"
                    )

                return data

    async def request_one_time_fix(self) -> Coordinate:
        """Look up the coordinate of the current public IP.

        Returns:
            Coordinate: Approximate device position.

        Raises:
            LocationUnavailableError: If the lookup fails after retries or
                the response has no usable coordinate.
        """
        try:
            data = await self._get_json()
        except aiohttp.ClientError as e:
            raise LocationUnavailableError(
                f"IP geolocation request failed: {e}"
            ) from e

        try:
            return Coordinate(
                float(data["latitude"]), float(data["longitude"])
            )
        except (KeyError, TypeError, ValueError) as e:
            raise LocationUnavailableError(
                f"IP geolocation response has no coordinate: {data}"
            ) from e
