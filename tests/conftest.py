"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient

from src.weather_summary_api.api.dependencies import get_container
from src.weather_summary_api.app import app
from src.weather_summary_api.core.config import Settings
from src.weather_summary_api.core.container import Container
from tests.fakes import NOW, FakeClock, FakeWeatherProvider


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def provider():
    return FakeWeatherProvider()


@pytest.fixture
def test_settings():
    return Settings(
        OPENWEATHERMAP_API_KEY="test-key",
        UPSTREAM_TIMEOUT=1.0,
        RATE_LIMIT_BURST=50,
    )


@pytest.fixture
def container(test_settings, provider, fake_clock):
    """Container wired with the fake provider and clocks."""
    return Container.from_settings(
        test_settings,
        provider=provider,
        clock=fake_clock,
        utc_clock=lambda: NOW,
    )


@pytest.fixture
def weather_service(container):
    return container.weather_service


@pytest.fixture(scope="function")
def client(container):
    """Create a test client whose routes use the test container."""
    app.dependency_overrides[get_container] = lambda: container
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
