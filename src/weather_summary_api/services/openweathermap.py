"""OpenWeatherMap API client implementing the weather provider contract."""

from collections import Counter, defaultdict
from datetime import datetime, timezone
from statistics import mean
from typing import Any

import httpx
from loguru import logger
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from ..core import local_time
from ..core.config import settings
from ..models.openweathermap import (
    OpenWeatherMapCurrentResponse,
    OpenWeatherMapForecastResponse,
    OpenWeatherMapGeocodingResult,
)
from ..models.values import Coordinates, Temperature
from ..models.weather import DailyForecast, Location, WeatherData, WeatherForecast
from .provider import (
    Failure,
    ProviderError,
    ProviderErrorCode,
    ProviderResult,
    Success,
    WeatherProvider,
)

SLOTS_PER_DAY = 8  # 3-hour forecast slots
MAX_FORECAST_SLOTS = 40


class OpenWeatherMapError(Exception):
    """Base exception for OpenWeatherMap API errors."""

    pass


class OpenWeatherMapTimeoutError(OpenWeatherMapError):
    """Raised when an OpenWeatherMap API request times out."""

    pass


class OpenWeatherMapUpstreamError(OpenWeatherMapError):
    """Raised when OpenWeatherMap API returns 5xx error."""

    pass


class OpenWeatherMapClientError(OpenWeatherMapError):
    """Raised when OpenWeatherMap API returns 4xx error."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class OpenWeatherMapNetworkError(OpenWeatherMapError):
    """Raised when network error occurs (connection refused, DNS failure, etc)."""

    pass


def _should_retry(exception: BaseException) -> bool:
    """Determine if an exception should trigger a retry.

    Retry on timeouts and 5xx errors. Never retry 4xx errors or network
    errors (DNS failures, refused connections).

    Example:
        >>> _should_retry(OpenWeatherMapTimeoutError())
        True
        >>> _should_retry(OpenWeatherMapClientError("Upstream API returned 401", 401))
        False
    """
    return isinstance(exception, (OpenWeatherMapTimeoutError, OpenWeatherMapUpstreamError))


def _classify(error: OpenWeatherMapError) -> ProviderError:
    """Map a client exception onto the provider error taxonomy.

    Example:
        >>> _classify(OpenWeatherMapClientError("Upstream API returned 429", 429)).code
        <ProviderErrorCode.RATE_LIMIT_EXCEEDED: 'RATE_LIMIT_EXCEEDED'>
    """
    if isinstance(error, OpenWeatherMapClientError):
        code = {
            401: ProviderErrorCode.INVALID_API_KEY,
            404: ProviderErrorCode.LOCATION_NOT_FOUND,
            429: ProviderErrorCode.RATE_LIMIT_EXCEEDED,
        }.get(error.status_code, ProviderErrorCode.UNKNOWN_ERROR)
        return ProviderError(code, str(error))
    if isinstance(error, (OpenWeatherMapTimeoutError, OpenWeatherMapNetworkError)):
        return ProviderError(ProviderErrorCode.NETWORK_ERROR, str(error))
    return ProviderError(ProviderErrorCode.UNKNOWN_ERROR, str(error))


class OpenWeatherMapProvider(WeatherProvider):
    """Client for weather, forecast and geocoding data from OpenWeatherMap.

    Uses httpx for async HTTP requests and tenacity for exponential backoff
    retries (disabled unless ``RETRY_COUNT`` is set). Expected failures are
    returned as ``Failure`` results, never raised.

    Example:
        >>> async def example():
        ...     async with OpenWeatherMapProvider(api_key="secret") as provider:
        ...         result = await provider.get_forecast(51.5074, -0.1278, days=5)
        ...         return result.get_or_none()
    """

    name = "OpenWeatherMap"

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
    ):
        """Initialize the client, defaulting to values from settings."""
        self._client: httpx.AsyncClient | None = None
        self._base_url = (base_url or settings.OPENWEATHERMAP_BASE_URL).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.OPENWEATHERMAP_API_KEY
        self._timeout = timeout or settings.UPSTREAM_TIMEOUT

    async def __aenter__(self):
        """Async context manager entry."""
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._timeout),
            follow_redirects=True,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @retry(
        retry=retry_if_exception(_should_retry),
        stop=stop_after_attempt(
            settings.RETRY_COUNT + 1
        ),  # +1 because first attempt isn't a retry
        wait=wait_exponential(
            min=settings.RETRY_DELAY / 1000.0,  # Convert ms to seconds
            multiplier=settings.RETRY_BACKOFF_MULTIPLIER,
        )
        + wait_random(0, 1),
        reraise=True,
    )
    async def _request(self, path: str, params: dict[str, Any]) -> Any:
        """GET a JSON document from the API.

        Raises:
            OpenWeatherMapTimeoutError: If request times out after all retries
            OpenWeatherMapUpstreamError: If API returns 5xx error after all retries
            OpenWeatherMapClientError: If API returns 4xx error (no retry)
            OpenWeatherMapNetworkError: If network error occurs (no retry)
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use async context manager.")

        if self._api_key:
            params = {**params, "appid": self._api_key}

        try:
            logger.debug("Fetching from OpenWeatherMap", path=path)
            response = await self._client.get(f"{self._base_url}{path}", params=params)

        except httpx.TimeoutException as e:
            logger.warning("OpenWeatherMap request timed out", path=path)
            raise OpenWeatherMapTimeoutError("Upstream API request timed out") from e

        except httpx.ConnectError as e:
            logger.warning("Failed to connect to OpenWeatherMap", path=path, error=str(e))
            raise OpenWeatherMapNetworkError("Failed to connect to upstream API") from e

        except httpx.HTTPError as e:
            logger.error("HTTP error occurred", path=path, error=str(e))
            raise OpenWeatherMapNetworkError(f"Network error: {e}") from e

        if response.status_code >= 500:
            logger.warning(
                "OpenWeatherMap returned 5xx error",
                status_code=response.status_code,
            )
            raise OpenWeatherMapUpstreamError(f"Upstream API returned {response.status_code}")

        if response.status_code >= 400:
            logger.warning(
                "OpenWeatherMap returned 4xx error",
                status_code=response.status_code,
            )
            raise OpenWeatherMapClientError(
                f"Upstream API returned {response.status_code}",
                response.status_code,
            )

        return response.json()

    async def _fetch(self, operation: str, path: str, params: dict[str, Any], parse) -> ProviderResult:
        """Run a request and convert its outcome into a provider result."""
        try:
            payload = await self._request(path, params)
            return Success(parse(payload))

        except OpenWeatherMapError as e:
            error = _classify(e)
            logger.warning(
                "OpenWeatherMap call failed",
                operation=operation,
                code=error.code.value,
            )
            return Failure(error)

        except (ValueError, TypeError) as e:
            logger.error("Unexpected OpenWeatherMap payload", operation=operation, error=str(e))
            return Failure(
                ProviderError(ProviderErrorCode.UNKNOWN_ERROR, f"Invalid upstream payload: {e}")
            )

    async def get_current_weather(self, latitude: float, longitude: float) -> ProviderResult:
        coordinates = Coordinates.of(latitude, longitude)
        return await self._fetch(
            "current_weather",
            "/data/2.5/weather",
            {"lat": latitude, "lon": longitude, "units": "metric"},
            lambda payload: self._normalize_current(
                OpenWeatherMapCurrentResponse(**payload), coordinates
            ),
        )

    async def get_forecast(self, latitude: float, longitude: float, days: int = 5) -> ProviderResult:
        coordinates = Coordinates.of(latitude, longitude)
        return await self._fetch(
            "forecast",
            "/data/2.5/forecast",
            {
                "lat": latitude,
                "lon": longitude,
                "units": "metric",
                "cnt": min(days * SLOTS_PER_DAY, MAX_FORECAST_SLOTS),
            },
            lambda payload: self._normalize_forecast(
                OpenWeatherMapForecastResponse(**payload), coordinates
            ),
        )

    async def get_location_details(self, latitude: float, longitude: float) -> ProviderResult:
        coordinates = Coordinates.of(latitude, longitude)
        result = await self._fetch(
            "location_details",
            "/geo/1.0/reverse",
            {"lat": latitude, "lon": longitude, "limit": 1},
            lambda payload: [OpenWeatherMapGeocodingResult(**item) for item in payload],
        )
        if not result.is_success:
            return result
        if not result.data:
            return Failure(
                ProviderError(ProviderErrorCode.LOCATION_NOT_FOUND, "Location not found")
            )

        place = result.data[0]
        return Success(
            Location(
                id=coordinates.to_coordinate_string(),
                name=place.name or coordinates.to_coordinate_string(),
                country=place.country or "N/A",
                latitude=coordinates.latitude,
                longitude=coordinates.longitude,
            )
        )

    async def search_locations(self, query: str) -> ProviderResult:
        def parse(payload):
            return [
                Location.from_coordinates(
                    Coordinates.of(item.lat, item.lon), name=item.name, country=item.country
                )
                for item in (OpenWeatherMapGeocodingResult(**raw) for raw in payload)
            ]

        return await self._fetch("search_locations", "/geo/1.0/direct", {"q": query, "limit": 5}, parse)

    def _normalize_current(
        self,
        data: OpenWeatherMapCurrentResponse,
        coordinates: Coordinates,
    ) -> WeatherData:
        """Convert a current weather payload into the domain model."""
        return WeatherData(
            location=Location.from_coordinates(
                coordinates, name=data.name or None, country=data.sys.country
            ),
            timestamp=datetime.fromtimestamp(data.dt, tz=timezone.utc),
            temperature=Temperature.celsius(data.main.temp),
            description=data.weather[0].description if data.weather else "Unknown",
            humidity=data.main.humidity,
            wind_speed=data.wind.speed,
            pressure=data.main.pressure,
        )

    def _normalize_forecast(
        self,
        data: OpenWeatherMapForecastResponse,
        coordinates: Coordinates,
    ) -> WeatherForecast:
        """Aggregate 3-hour slots into daily forecasts.

        Slots are grouped by local calendar date using the longitude-based
        offset, so "tomorrow" lines up with the summary service's notion of it.
        Per day: lowest minimum, highest maximum, mean humidity and wind speed,
        most frequent description, and the pressure of the first slot.
        """
        offset = local_time.utc_offset(coordinates)
        slots_by_day = defaultdict(list)
        for item in sorted(data.items, key=lambda i: i.dt):
            local_date = (datetime.fromtimestamp(item.dt, tz=timezone.utc) + offset).date()
            slots_by_day[local_date].append(item)

        forecasts = []
        for day, slots in slots_by_day.items():
            descriptions = Counter(
                slot.weather[0].description if slot.weather else "Unknown" for slot in slots
            )
            forecasts.append(
                DailyForecast(
                    date=day,
                    temperature_min=Temperature.celsius(min(s.main.temp_min for s in slots)),
                    temperature_max=Temperature.celsius(max(s.main.temp_max for s in slots)),
                    description=descriptions.most_common(1)[0][0],
                    humidity=round(mean(s.main.humidity for s in slots)),
                    wind_speed=mean(s.wind.speed for s in slots),
                    pressure=slots[0].main.pressure,
                )
            )

        return WeatherForecast(
            location=Location.from_coordinates(
                coordinates, name=data.city.name or None, country=data.city.country
            ),
            forecasts=forecasts,
        )
