import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from src.simple_weather.entities import (
    AuthorizationStatus,
    Coordinate,
    LocationSource,
    ResolvedLocation,
)
from src.simple_weather.errors import (
    LocationError,
    LocationUnavailableError,
    PermissionDeniedError,
    PermissionRestrictedError,
)
from src.simple_weather.services.location_cache import LocationCache
from src.simple_weather.services.location_provider import LocationProvider
from src.simple_weather.utils.common import DEFAULT_LOCATION_TIMEOUT_SECONDS
from src.simple_weather.utils.geo import is_significant_move, utc_now
from src.simple_weather.utils.observable import Observable

logger = logging.getLogger(__name__)


class LocationState(str, Enum):
    IDLE = "idle"
    USING_CACHED = "usingCached"
    AWAITING_FIX = "awaitingFix"
    LIVE = "live"
    FAILED = "failed"


def permission_error(status: AuthorizationStatus) -> LocationError:
    if status is AuthorizationStatus.RESTRICTED:
        return PermissionRestrictedError()
    return PermissionDeniedError()


class LocationReconciler(Observable):
    """Owns the single authoritative "current location".

    On `start()` the cached coordinate (if any, and fresh) is published
    immediately and a live fix is requested in the background. While the
    published value still comes from the cache, a live fix closer than
    1 km is treated as GPS noise and dropped; a farther fix replaces it.
    Once the location is live every new fix replaces the published value
    and is written back to the cache.

    Provider failures become `location_error` and are not retried; callers
    retry with `request_location()`.

    Attributes:
        provider (LocationProvider): Live location source.
        cache (LocationCache): Durable last-known-location cache.
        clock (Callable[[], datetime]): Source of the current UTC time.
        state (LocationState): Current reconciliation state.
        resolved (Optional[ResolvedLocation]): Published location.
        is_loading (bool): True while a live fix is outstanding.
        location_error (Optional[Exception]): Last fix or permission error.
        did_use_cached_location (bool): True while `resolved` came from the
            cache.
    """

    def __init__(
        self,
        provider: LocationProvider,
        cache: LocationCache,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        super().__init__()
        self.provider = provider
        self.cache = cache
        self.clock = clock

        self.state = LocationState.IDLE
        self.resolved: Optional[ResolvedLocation] = None
        self.is_loading = False
        self.location_error: Optional[Exception] = None
        self.did_use_cached_location = False
        self.authorization_status = provider.authorization_status

        self._fix_task: Optional["asyncio.Task[None]"] = None
        self._settled = asyncio.Event()
        self._settled.set()

        provider.on_authorization_change(self.handle_authorization_change)

    @property
    def current_location(self) -> Optional[Coordinate]:
        return self.resolved.coordinate if self.resolved else None

    async def start(self) -> None:
        """Publish the cached location, then request a live fix.

        The live fix runs in the background; use `wait_for_pending_fix()`
        or `wait_for_location()` to wait for it.
        """
        cached = await self.cache.retrieve()
        if cached is not None:
            self.resolved = ResolvedLocation(
                cached, LocationSource.CACHED, self.clock()
            )
            self.did_use_cached_location = True
            self.state = LocationState.USING_CACHED
            logger.info(f"Using cached location {cached.as_tuple()}")
        else:
            self.state = LocationState.AWAITING_FIX

        if self.authorization_status.is_authorized:
            self._begin_fix()
        self._publish()

    async def request_location_permission(self) -> None:
        """Ask for permission, or request a fix if already granted."""
        status = self.provider.authorization_status
        self.authorization_status = status
        if status is AuthorizationStatus.NOT_DETERMINED:
            self._set_loading(True)
            self._publish()
            await self.provider.request_authorization()
        elif status.is_authorized:
            await self.request_location()
        else:
            logger.info(f"Location access unavailable: {status.value}")
            self._fail(permission_error(status))

    async def request_location(self) -> None:
        """Request a live fix and wait for it to be reconciled.

        An outstanding fix request is reused rather than duplicated.
        """
        if not self.authorization_status.is_authorized:
            self._fail(permission_error(self.authorization_status))
            return
        task = self._begin_fix()
        self._publish()
        await asyncio.shield(task)

    async def wait_for_pending_fix(self) -> None:
        if self._fix_task is not None and not self._fix_task.done():
            await asyncio.shield(self._fix_task)

    async def wait_for_location(
        self, timeout: float = DEFAULT_LOCATION_TIMEOUT_SECONDS
    ) -> Optional[Coordinate]:
        """Wait up to `timeout` seconds for a location to be known.

        Returns immediately when a location is already published or nothing
        is loading. Never raises on timeout.

        Args:
            timeout (float): Ceiling in seconds.

        Returns:
            Optional[Coordinate]: The published coordinate, if any.
        """
        if self.resolved is None and self.is_loading:
            try:
                await asyncio.wait_for(self._settled.wait(), timeout)
            except asyncio.TimeoutError:
                logger.warning(f"No location fix within {timeout}s")
        return self.current_location

    async def handle_fix(self, coordinate: Coordinate) -> None:
        """Reconcile a live fix with the published location."""
        if (
            self.state is LocationState.USING_CACHED
            and self.resolved is not None
            and not is_significant_move(self.resolved.coordinate, coordinate)
        ):
            logger.debug(
                f"Ignoring live fix {coordinate.as_tuple()} near cached "
                f"location"
            )
            self._set_loading(False)
            self._publish()
            return

        self.resolved = ResolvedLocation(
            coordinate, LocationSource.LIVE, self.clock()
        )
        self.state = LocationState.LIVE
        self.did_use_cached_location = False
        self.location_error = None
        self._set_loading(False)
        logger.info(f"Updated location {coordinate.as_tuple()}")
        self._publish()
        await self.cache.store(coordinate)

    def handle_authorization_change(self, status: AuthorizationStatus) -> None:
        """React to a permission change reported by the provider."""
        self.authorization_status = status
        logger.info(f"Authorization changed to {status.value}")
        if status.is_authorized:
            try:
                asyncio.get_running_loop()
            except RuntimeError:
                logger.warning("No running event loop, fix not requested")
                self._publish()
                return
            self._begin_fix()
        elif status in (
            AuthorizationStatus.DENIED,
            AuthorizationStatus.RESTRICTED,
        ):
            self.resolved = None
            self.did_use_cached_location = False
            self._fail(permission_error(status))
            return
        else:
            self._set_loading(False)
        self._publish()

    def _begin_fix(self) -> "asyncio.Task[None]":
        if self.state is not LocationState.USING_CACHED:
            self.state = LocationState.AWAITING_FIX
        self.location_error = None
        self._set_loading(True)
        if self._fix_task is None or self._fix_task.done():
            self._fix_task = asyncio.create_task(self._run_fix())
        return self._fix_task

    async def _run_fix(self) -> None:
        try:
            coordinate = await self.provider.request_one_time_fix()
        except Exception as e:
            if not self.authorization_status.is_authorized:
                logger.debug(f"Dropping fix error after revocation: {e}")
                return
            if isinstance(e, LocationError):
                self._fail(e)
            else:
                self._fail(LocationUnavailableError(str(e)))
            return
        # Permission revoked while the fix was outstanding.
        if not self.authorization_status.is_authorized:
            logger.info(
                f"Discarding fix {coordinate.as_tuple()}, location access "
                f"is {self.authorization_status.value}"
            )
            return
        await self.handle_fix(coordinate)

    def _fail(self, error: LocationError) -> None:
        logger.error(f"Location fix failed: {error}")
        self.location_error = error
        # A failed background refresh keeps showing the cached location.
        using_cached = self.state is LocationState.USING_CACHED
        if not using_cached or self.resolved is None:
            self.state = LocationState.FAILED
        self._set_loading(False)
        self._publish()

    def _set_loading(self, loading: bool) -> None:
        self.is_loading = loading
        if loading:
            self._settled.clear()
        else:
            self._settled.set()
