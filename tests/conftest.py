import logging
import os
import sys
from datetime import timedelta
from pathlib import Path
from typing import Any, Callable, Dict, Tuple
from unittest.mock import AsyncMock, Mock

import pytest
from _pytest.monkeypatch import MonkeyPatch
from pytest_mock import MockerFixture
from sqlalchemy import create_engine

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from src.simple_weather.models import Base  # noqa: E402
from src.simple_weather.services.record_store_async import (  # noqa: E402
    AsyncRecordStore,
)
from tests.helpers import (  # noqa: E402
    NOW,
    FakeClock,
    FakeLocationProvider,
    make_current,
    make_daily,
    make_hourly,
)


@pytest.fixture(scope="session", autouse=True)  # type: ignore[misc]
def configure_logging() -> None:
    """Configure root logging for tests if not already set up.

    Side effects:
        Ensures DEBUG level logging is configured once for the session.
    """
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=logging.DEBUG)


@pytest.fixture  # type: ignore[misc]
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture  # type: ignore[misc]
def location_provider() -> FakeLocationProvider:
    return FakeLocationProvider()


@pytest.fixture  # type: ignore[misc]
def mock_weather_provider() -> Mock:
    """Provide a weather provider mock with three async fetch methods.

    Returns:
        Mock: Provider answering with one day of data around `NOW`.
    """
    provider = Mock()
    provider.get_current = AsyncMock(return_value=make_current())
    provider.get_daily = AsyncMock(
        return_value=make_daily(NOW - timedelta(days=1), 10)
    )
    provider.get_hourly = AsyncMock(
        return_value=make_hourly(NOW - timedelta(hours=2), 24)
    )
    return provider


@pytest.fixture  # type: ignore[misc]
def mock_record_store() -> Mock:
    """Provide a record store mock with common async methods."""
    m = Mock()
    m.replace_cached_location = AsyncMock(return_value=None)
    m.get_cached_location = AsyncMock(return_value=None)
    m.clear_cached_location = AsyncMock(return_value=0)
    m.list_saved_places = AsyncMock(return_value=[])
    m.put = AsyncMock(return_value=None)
    m.delete_saved_place = AsyncMock(return_value=True)
    m.delete_current_location_places = AsyncMock(return_value=0)
    return m


@pytest.fixture  # type: ignore[misc]
def record_store(tmp_path: Path) -> AsyncRecordStore:
    """Provide a record store backed by a fresh SQLite file."""
    db_url = f"sqlite:///{tmp_path / 'weather.db'}"
    engine = create_engine(db_url)
    Base.metadata.create_all(engine)
    engine.dispose()
    return AsyncRecordStore(db_url)


@pytest.fixture  # type: ignore[misc]
def env_vars(monkeypatch: MonkeyPatch) -> Callable[[Dict[str, Any]], None]:
    """Fixture to set environment variables for the duration of a test.

    Args:
        monkeypatch (MonkeyPatch): Pytest monkeypatch fixture used internally.

    Returns:
        Callable[[Dict[str, Any]], None]: Function that accepts a mapping of
        names to values and sets them in os.environ for the test.
    """

    def _setter(mapping: Dict[str, Any]) -> None:
        for k, v in mapping.items():
            monkeypatch.setenv(k, str(v))

    return _setter


@pytest.fixture  # type: ignore[misc]
def aiohttp_client_session_mock(mocker: MockerFixture) -> Tuple[Mock, Mock]:
    """Patch aiohttp.ClientSession to return a session with a mocked GET.

    Returns:
        Tuple[Mock, Mock]: (session_obj, response) where response.json is an
        AsyncMock and raise_for_status is a no-op.
    """
    session_obj = Mock()

    get_ctx = Mock()
    response = Mock()
    response.raise_for_status = Mock(return_value=None)
    response.json = AsyncMock()
    get_ctx.__aenter__ = AsyncMock(return_value=response)
    get_ctx.__aexit__ = AsyncMock(return_value=None)

    session_obj.get.return_value = get_ctx

    client_session_ctx = Mock()
    client_session_ctx.__aenter__ = AsyncMock(return_value=session_obj)
    client_session_ctx.__aexit__ = AsyncMock(return_value=None)

    mocker.patch(
        "src.simple_weather.services.open_weather_map_api_client_async"
        ".aiohttp.ClientSession",
        return_value=client_session_ctx,
    )
    mocker.patch(
        "src.simple_weather.services.open_weather_map_api_client_async"
        ".aiohttp.TCPConnector",
    )

    return session_obj, response
