import asyncio
from typing import Optional
from unittest.mock import AsyncMock, Mock

import pytest

from src.simple_weather.entities import (
    AuthorizationStatus,
    Coordinate,
    SavedPlace,
)
from src.simple_weather.errors import WeatherProviderError
from src.simple_weather.services.location_reconciler import LocationReconciler
from src.simple_weather.services.place_storage import SavedPlaceStorage
from src.simple_weather.services.record_store_async import AsyncRecordStore
from src.simple_weather.services.weather_fetch_cache import WeatherFetchCache
from src.simple_weather.session import CURRENT_LOCATION_NAME, WeatherSession
from src.simple_weather.utils.geo import cache_key
from tests.helpers import FakeClock, FakeLocationProvider, make_current

LONDON = Coordinate(51.5074, -0.1278)
PARIS = Coordinate(48.8566, 2.3522)
OSLO = Coordinate(59.9139, 10.7522)


def make_session(
    provider: FakeLocationProvider,
    weather_provider: Mock,
    record_store: AsyncRecordStore,
    clock: FakeClock,
    cached: Optional[Coordinate] = None,
    **kwargs: object,
) -> WeatherSession:
    cache = Mock()
    cache.retrieve = AsyncMock(return_value=cached)
    cache.store = AsyncMock(return_value=None)
    return WeatherSession(
        LocationReconciler(provider, cache, clock=clock),
        WeatherFetchCache(weather_provider, clock=clock),
        SavedPlaceStorage(record_store),
        **kwargs,  # type: ignore[arg-type]
    )


@pytest.mark.asyncio  # type: ignore[misc]
async def test_default_location_uses_cached_coordinate_at_once(
    location_provider: FakeLocationProvider,
    mock_weather_provider: Mock,
    record_store: AsyncRecordStore,
    clock: FakeClock,
) -> None:
    # Arrange
    location_provider.fix.return_value = PARIS
    session = make_session(
        location_provider,
        mock_weather_provider,
        record_store,
        clock,
        cached=PARIS,
    )
    await session.start()

    # Act
    place = await session.initialize_default_location(timeout=0)

    # Assert
    assert place is not None
    assert place.name == CURRENT_LOCATION_NAME
    assert place.coordinate == PARIS
    assert place.is_current_location_placeholder is True
    assert session.places.current_location == place
    assert session.places.saved_places == []
    await session.reconciler.wait_for_pending_fix()


@pytest.mark.asyncio  # type: ignore[misc]
async def test_default_location_waits_for_granted_permission(
    mock_weather_provider: Mock,
    record_store: AsyncRecordStore,
    clock: FakeClock,
) -> None:
    # Arrange
    provider = FakeLocationProvider(AuthorizationStatus.NOT_DETERMINED)
    provider.fix.return_value = LONDON
    session = make_session(
        provider, mock_weather_provider, record_store, clock
    )
    await session.start()
    asyncio.get_running_loop().call_later(
        0.01,
        provider.change_authorization,
        AuthorizationStatus.AUTHORIZED_FULL,
    )

    # Act
    place = await session.initialize_default_location(timeout=1.0)

    # Assert
    assert provider.authorization_requests == 1
    assert place is not None
    assert place.coordinate == LONDON


@pytest.mark.asyncio  # type: ignore[misc]
async def test_default_location_gives_up_after_timeout(
    mock_weather_provider: Mock,
    record_store: AsyncRecordStore,
    clock: FakeClock,
) -> None:
    # Arrange
    provider = FakeLocationProvider(AuthorizationStatus.NOT_DETERMINED)
    session = make_session(
        provider, mock_weather_provider, record_store, clock
    )
    await session.start()

    # Act
    place = await session.initialize_default_location(timeout=0.05)

    # Assert
    assert place is None
    assert session.places.current_location is None


@pytest.mark.asyncio  # type: ignore[misc]
async def test_placeholder_named_by_resolver_with_fallback(
    location_provider: FakeLocationProvider,
    mock_weather_provider: Mock,
    record_store: AsyncRecordStore,
    clock: FakeClock,
) -> None:
    # Arrange
    resolver = AsyncMock(side_effect=["London", RuntimeError("offline")])
    session = make_session(
        location_provider,
        mock_weather_provider,
        record_store,
        clock,
        name_resolver=resolver,
    )
    await session.start()

    # Act
    first = await session.request_fresh_location()
    named = session.places.current_location
    await session.request_fresh_location()
    fallback = session.places.current_location

    # Assert
    assert first == LONDON
    assert named is not None and named.name == "London"
    assert fallback is not None and fallback.name == CURRENT_LOCATION_NAME


@pytest.mark.asyncio  # type: ignore[misc]
async def test_cached_location_refreshes_weather_in_background(
    location_provider: FakeLocationProvider,
    mock_weather_provider: Mock,
    record_store: AsyncRecordStore,
    clock: FakeClock,
) -> None:
    # Arrange
    location_provider.fix.return_value = PARIS
    session = make_session(
        location_provider,
        mock_weather_provider,
        record_store,
        clock,
        cached=PARIS,
    )
    await session.start()

    # Act
    immediate = await session.fetch_weather_if_needed()
    snapshot = await session.wait_for_background_refresh()

    # Assert
    assert immediate is None
    assert snapshot is not None
    assert session.current_weather == snapshot.current
    assert session.is_loading_weather is False
    mock_weather_provider.get_current.assert_awaited_once_with(PARIS)
    await session.reconciler.wait_for_pending_fix()


@pytest.mark.asyncio  # type: ignore[misc]
async def test_live_location_weather_is_awaited(
    location_provider: FakeLocationProvider,
    mock_weather_provider: Mock,
    record_store: AsyncRecordStore,
    clock: FakeClock,
) -> None:
    # Arrange
    session = make_session(
        location_provider, mock_weather_provider, record_store, clock
    )
    await session.start()
    await session.reconciler.wait_for_pending_fix()

    # Act
    snapshot = await session.fetch_weather_if_needed()

    # Assert
    assert snapshot is not None
    assert session.daily_forecast == list(snapshot.daily)
    assert session.weather_error is None


@pytest.mark.asyncio  # type: ignore[misc]
async def test_refresh_weather_without_location_is_noop(
    mock_weather_provider: Mock,
    record_store: AsyncRecordStore,
    clock: FakeClock,
) -> None:
    provider = FakeLocationProvider(AuthorizationStatus.DENIED)
    session = make_session(
        provider, mock_weather_provider, record_store, clock
    )
    await session.start()

    assert await session.refresh_weather() is None
    mock_weather_provider.get_current.assert_not_awaited()


@pytest.mark.asyncio  # type: ignore[misc]
async def test_refresh_all_saved_places_tolerates_partial_failure(
    location_provider: FakeLocationProvider,
    mock_weather_provider: Mock,
    record_store: AsyncRecordStore,
    clock: FakeClock,
) -> None:
    # Arrange
    async def current_for(coordinate: Coordinate) -> object:
        if coordinate == OSLO:
            raise WeatherProviderError("boom")
        return make_current()

    mock_weather_provider.get_current.side_effect = current_for
    session = make_session(
        location_provider, mock_weather_provider, record_store, clock
    )
    await session.start()
    await session.places.save(SavedPlace("Paris", PARIS))
    await session.places.save(SavedPlace("Oslo", OSLO))

    # Act
    results = await session.refresh_all_saved_places()

    # Assert
    assert set(results) == {cache_key(PARIS)}
    paris = next(
        p for p in session.places.saved_places if p.name == "Paris"
    )
    assert session.cached_weather_for(paris) is results[cache_key(PARIS)]
    await session.reconciler.wait_for_pending_fix()


@pytest.mark.asyncio  # type: ignore[misc]
async def test_repeated_background_refreshes_are_all_tracked(
    location_provider: FakeLocationProvider,
    mock_weather_provider: Mock,
    record_store: AsyncRecordStore,
    clock: FakeClock,
) -> None:
    # Arrange
    location_provider.fix.return_value = PARIS
    session = make_session(
        location_provider,
        mock_weather_provider,
        record_store,
        clock,
        cached=PARIS,
    )
    await session.start()

    # Act
    await session.fetch_weather_if_needed()
    await session.fetch_weather_if_needed()
    pending = len(session._background_tasks)
    snapshot = await session.wait_for_background_refresh()

    # Assert
    assert pending == 2
    assert snapshot is not None
    assert session._background_tasks == set()
    assert session.current_weather == snapshot.current
    await session.reconciler.wait_for_pending_fix()
