"""Tests for API endpoints."""

import pytest
from fastapi.testclient import TestClient

from src.weather_summary_api.api.dependencies import get_container
from src.weather_summary_api.app import app
from src.weather_summary_api.core.container import Container
from src.weather_summary_api.services.provider import (
    Failure,
    ProviderError,
    ProviderErrorCode,
)
from tests.fakes import LONDON, NOW, PARIS

SUMMARY_URL = "/api/v1/weather/summary"
LOCATIONS_URL = "/api/v1/weather/locations"


@pytest.fixture
def strict_client(test_settings, provider, fake_clock):
    """Test client whose burst protection admits a single request."""
    settings = test_settings.model_copy(update={"RATE_LIMIT_BURST": 1})
    container = Container.from_settings(
        settings, provider=provider, clock=fake_clock, utc_clock=lambda: NOW
    )
    app.dependency_overrides[get_container] = lambda: container
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


class TestHealthEndpoints:
    """Test health check endpoints."""

    def test_health_endpoint(self, client):
        """Test /health endpoint returns 200 OK."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_readiness_endpoint(self, client):
        """Test /ready endpoint returns 200 OK with the provider built at startup."""
        response = client.get("/ready")

        assert response.status_code == 200
        assert response.json() == {"status": "ok", "provider": "OpenWeatherMap"}

    def test_readiness_before_startup(self):
        """Test /ready reports 503 while the container is not built."""
        with TestClient(app) as test_client:
            app.state.container = None
            response = test_client.get("/ready")

        assert response.status_code == 503
        assert response.json() == {"status": "starting"}

    def test_metrics_endpoint(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")


class TestSummaryEndpoint:
    """Test the favourite locations summary endpoint."""

    def test_summary(self, client, provider):
        """Test that only locations above the threshold are returned."""
        provider.add_location(LONDON, "London", "GB", [18.0, 25.0])
        provider.add_location(PARIS, "Paris", "FR", [18.0, 15.0])

        response = client.get(
            SUMMARY_URL,
            params={"locations": "51.5074,-0.1278,48.8566,2.3522", "temperature": "20", "unit": "celsius"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["locations"] == [
            {
                "locationId": "51.5074,-0.1278",
                "locationName": "London",
                "country": "GB",
                "tomorrowMaxTemperature": 25.0,
                "temperatureUnit": "celsius",
                "weatherDescription": "clear sky",
            }
        ]
        assert data["metadata"]["source"] == "weather-integration-api"
        assert data["metadata"]["timestamp"].endswith("Z")
        assert data["metadata"]["rateLimitRemaining"] == 998

    def test_summary_without_matches(self, client, provider):
        provider.add_location(LONDON, "London", "GB", [18.0, 25.0])

        response = client.get(SUMMARY_URL, params={"locations": "51.5074,-0.1278", "temperature": "30"})

        assert response.status_code == 200
        assert response.json()["locations"] == []

    @pytest.mark.parametrize(
        "params,reason",
        [
            ({}, "LOCATIONS_REQUIRED"),
            ({"locations": "51.5074,-0.1278"}, "TEMPERATURE_REQUIRED"),
            ({"locations": "51.5074", "temperature": "20"}, "LOCATIONS_INVALID"),
            ({"locations": "51.5074,-0.1278", "temperature": "20", "unit": "kelvin"}, "UNIT_INVALID"),
            ({"locations": "51.5074,-0.1278", "temperature": "hot"}, "TEMPERATURE_INVALID"),
        ],
    )
    def test_invalid_parameters(self, client, provider, params, reason):
        """Test that malformed queries return 400 with the error envelope."""
        response = client.get(SUMMARY_URL, params=params)

        assert response.status_code == 400
        assert response.headers["x-error-code"] == "VALIDATION_ERROR"
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"] == reason
        assert provider.calls == []

    def test_failed_locations_are_omitted(self, client, provider):
        provider.add_location(LONDON, "London", "GB", [18.0, 25.0])
        provider.add_location(PARIS, "Paris", "FR", [18.0, 26.0])
        provider.forecasts["48.8566,2.3522"] = Failure(
            ProviderError(ProviderErrorCode.NETWORK_ERROR, "Failed to connect to upstream API")
        )

        response = client.get(
            SUMMARY_URL,
            params={"locations": "51.5074,-0.1278,48.8566,2.3522", "temperature": "20"},
        )

        assert response.status_code == 200
        assert [loc["locationName"] for loc in response.json()["locations"]] == ["London"]


class TestLocationEndpoint:
    """Test the single location endpoint."""

    def test_location_details(self, client, provider):
        provider.add_location(LONDON, "London", "GB", [18.0, 25.0, 21.0])

        response = client.get(f"{LOCATIONS_URL}/51.5074,-0.1278")

        assert response.status_code == 200
        data = response.json()
        assert data["location"] == {
            "id": "51.5074,-0.1278",
            "name": "London",
            "country": "GB",
            "latitude": 51.5074,
            "longitude": -0.1278,
        }
        assert [day["date"] for day in data["forecast"]] == ["2026-01-10", "2026-01-11", "2026-01-12"]
        assert data["forecast"][1]["temperatureMax"] == 25.0
        assert data["forecast"][1]["temperatureMin"] == 17.0
        assert data["metadata"]["rateLimitRemaining"] == 999

    def test_location_not_found(self, client):
        response = client.get(f"{LOCATIONS_URL}/10.0,20.0")

        assert response.status_code == 404
        assert response.headers["x-error-code"] == "NOT_FOUND"
        assert response.json()["error"]["message"] == "Location not found: 10.0,20.0"

    def test_invalid_location_id(self, client):
        response = client.get(f"{LOCATIONS_URL}/somewhere")

        assert response.status_code == 400
        assert response.json()["error"]["details"] == "LOCATION_INVALID"

    def test_upstream_failure(self, client, provider):
        """Test that a failing provider surfaces as 503."""
        provider.add_location(LONDON, "London", "GB", [18.0, 25.0])
        provider.forecasts["51.5074,-0.1278"] = Failure(
            ProviderError(ProviderErrorCode.INVALID_API_KEY, "Upstream API returned 401")
        )

        response = client.get(f"{LOCATIONS_URL}/51.5074,-0.1278")

        assert response.status_code == 503
        assert response.headers["x-error-code"] == "SERVICE_UNAVAILABLE"


class TestRateLimiting:
    """Test request admission."""

    def test_burst_protection(self, strict_client, provider):
        """Test that the second request inside the burst window is rejected."""
        provider.add_location(LONDON, "London", "GB", [18.0, 25.0])

        first = strict_client.get(f"{LOCATIONS_URL}/51.5074,-0.1278")
        second = strict_client.get(f"{LOCATIONS_URL}/51.5074,-0.1278")

        assert first.status_code == 200
        assert second.status_code == 429
        assert second.headers["x-error-code"] == "BURST_LIMIT_EXCEEDED"
        assert int(second.headers["retry-after"]) >= 1
        error = second.json()["error"]
        assert error["message"] == "Burst protection triggered. Please slow down."
        assert error["details"] == "burst"

    def test_clients_are_limited_separately(self, strict_client, provider):
        provider.add_location(LONDON, "London", "GB", [18.0, 25.0])
        url = f"{LOCATIONS_URL}/51.5074,-0.1278"

        first = strict_client.get(url, headers={"X-Forwarded-For": "203.0.113.7"})
        second = strict_client.get(url, headers={"X-Forwarded-For": "203.0.113.8, 10.0.0.1"})

        assert first.status_code == 200
        assert second.status_code == 200

    def test_upstream_quota_exhausted(self, test_settings, provider, fake_clock):
        """Test that running out of upstream tokens mid-batch returns 429."""
        settings = test_settings.model_copy(update={"UPSTREAM_RATE_LIMIT": 1})
        container = Container.from_settings(
            settings, provider=provider, clock=fake_clock, utc_clock=lambda: NOW
        )
        provider.add_location(LONDON, "London", "GB", [18.0, 25.0])
        provider.add_location(PARIS, "Paris", "FR", [18.0, 26.0])
        app.dependency_overrides[get_container] = lambda: container
        try:
            with TestClient(app) as test_client:
                response = test_client.get(
                    SUMMARY_URL,
                    params={"locations": "51.5074,-0.1278,48.8566,2.3522", "temperature": "20"},
                )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 429
        assert response.headers["x-error-code"] == "RATE_LIMIT_EXCEEDED"
        assert response.json()["error"]["details"] == "upstream"
        assert "retry-after" in response.headers

    def test_health_is_not_rate_limited(self, strict_client):
        responses = [strict_client.get("/health") for _ in range(3)]

        assert all(r.status_code == 200 for r in responses)


class TestUnexpectedErrors:
    """Test the catch-all error handler."""

    def test_internal_error(self, container, monkeypatch):
        async def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(container.weather_service, "summary_for_favorites", explode)
        app.dependency_overrides[get_container] = lambda: container
        try:
            with TestClient(app, raise_server_exceptions=False) as test_client:
                response = test_client.get(
                    SUMMARY_URL, params={"locations": "51.5074,-0.1278", "temperature": "20"}
                )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        assert response.json()["error"] == {
            "code": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "details": None,
        }
