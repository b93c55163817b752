"""Cache-aside access to the upstream weather provider."""

import asyncio
from collections.abc import Awaitable

from loguru import logger

from ..core.cache import TTLCache
from ..core.errors import ServiceUnavailableError
from ..core.metrics import upstream_requests
from ..models.values import Coordinates, InvalidValueError
from ..models.weather import Location, WeatherData, WeatherForecast
from .provider import ProviderErrorCode, ProviderResult, WeatherProvider


class WeatherRepository:
    """Serves weather, forecast and location lookups from cache or provider.

    Every lookup checks its namespace cache first and only calls the provider
    on a miss. Successful, non-empty results are cached; "not found" results
    are returned as None and not cached; any other provider failure, a
    timeout or an unexpected fault raises ``ServiceUnavailableError`` without
    touching the cache.

    Example:
        >>> async def example(repository: "WeatherRepository"):
        ...     location = await repository.get_location_by_id("51.5074,-0.1278")
        ...     return await repository.get_forecast(location, days=5)
    """

    def __init__(
        self,
        provider: WeatherProvider,
        weather_cache: TTLCache,
        forecast_cache: TTLCache,
        location_cache: TTLCache,
        timeout: float,
        fallback_to_coordinates: bool = True,
    ):
        """Initialize the repository.

        Args:
            provider: Upstream weather provider
            weather_cache: Cache for current conditions
            forecast_cache: Cache for daily forecasts
            location_cache: Cache for reverse geocoding results
            timeout: Upper bound in seconds for a single provider call
            fallback_to_coordinates: Build a location from its coordinates when
                the provider does not know the place
        """
        self._provider = provider
        self._weather_cache = weather_cache
        self._forecast_cache = forecast_cache
        self._location_cache = location_cache
        self._timeout = timeout
        self._fallback_to_coordinates = fallback_to_coordinates

    async def _call_provider(self, operation: str, call: Awaitable[ProviderResult]) -> ProviderResult:
        """Await a provider call within the timeout and record its outcome."""
        try:
            result = await asyncio.wait_for(call, timeout=self._timeout)

        except asyncio.TimeoutError:
            upstream_requests.add(1, {"operation": operation, "outcome": "timeout"})
            logger.warning("Upstream call timed out", operation=operation, timeout=self._timeout)
            raise ServiceUnavailableError(
                "Weather provider did not respond in time. Please try again later."
            ) from None

        except Exception as e:
            upstream_requests.add(1, {"operation": operation, "outcome": "error"})
            logger.exception("Unexpected error calling weather provider", operation=operation)
            raise ServiceUnavailableError(
                "Unable to fetch weather data. Please try again later."
            ) from e

        outcome = "success" if result.is_success else result.error.code.value.lower()
        upstream_requests.add(1, {"operation": operation, "outcome": outcome})
        return result

    def _raise_unavailable(self, result: ProviderResult, what: str, location_name: str) -> None:
        logger.error(
            "Weather provider failed",
            what=what,
            location=location_name,
            code=result.error.code.value,
        )
        raise ServiceUnavailableError(f"Unable to fetch {what} for {location_name}")

    async def get_current_weather(self, location: Location) -> WeatherData | None:
        """Current conditions for a location."""

        async def load() -> WeatherData | None:
            logger.debug("Fetching weather data from provider", location=location.name)
            result = await self._call_provider(
                "current_weather",
                self._provider.get_current_weather(location.latitude, location.longitude),
            )
            if result.is_success:
                return result.data
            if result.error.code is ProviderErrorCode.LOCATION_NOT_FOUND:
                return None
            self._raise_unavailable(result, "weather data", location.name)

        return await self._weather_cache.get_or_load(location.id, load)

    async def get_forecast(self, location: Location, days: int = 5) -> WeatherForecast | None:
        """Daily forecast for a location covering ``days`` days."""

        async def load() -> WeatherForecast | None:
            logger.debug("Fetching forecast data from provider", location=location.name, days=days)
            result = await self._call_provider(
                "forecast",
                self._provider.get_forecast(location.latitude, location.longitude, days),
            )
            if result.is_success:
                # An empty forecast is not worth caching
                return result.data if result.data.forecasts else None
            if result.error.code is ProviderErrorCode.LOCATION_NOT_FOUND:
                return None
            self._raise_unavailable(result, "forecast data", location.name)

        return await self._forecast_cache.get_or_load(f"{location.id}_{days}d", load)

    async def get_location_by_id(self, location_id: str) -> Location | None:
        """Resolve a ``"lat,lon"`` location id.

        Returns:
            The location, or None for a malformed id or an unknown place
            (unless falling back to coordinates is enabled)
        """
        try:
            coordinates = Coordinates.parse(location_id)
        except InvalidValueError:
            logger.warning("Invalid location ID format", location_id=location_id)
            return None

        cache_key = coordinates.to_coordinate_string()

        async def load() -> Location | None:
            logger.debug("Fetching location data from provider", location_id=cache_key)
            result = await self._call_provider(
                "location_details",
                self._provider.get_location_details(coordinates.latitude, coordinates.longitude),
            )
            if result.is_success:
                return result.data
            if result.error.code is ProviderErrorCode.LOCATION_NOT_FOUND:
                if self._fallback_to_coordinates:
                    logger.info("No geocoding data, using coordinates as location", location_id=cache_key)
                    return Location.from_coordinates(coordinates)
                return None
            self._raise_unavailable(result, "location data", cache_key)

        return await self._location_cache.get_or_load(cache_key, load)

    async def get_locations_by_ids(self, location_ids: list[str]) -> list[Location]:
        """Resolve several ids; failing ids are logged and skipped."""
        locations = []
        for location_id in location_ids:
            try:
                location = await self.get_location_by_id(location_id)
            except ServiceUnavailableError as e:
                logger.warning("Failed to fetch location", location_id=location_id, error=e.message)
                continue
            if location is not None:
                locations.append(location)
        return locations

    async def search_locations(self, query: str) -> list[Location]:
        """Places whose name matches ``query``. Results are not cached.

        Raises:
            ServiceUnavailableError: When the provider fails or times out
        """
        result = await self._call_provider("search_locations", self._provider.search_locations(query))
        if result.is_success:
            return result.data
        if result.error.code is ProviderErrorCode.LOCATION_NOT_FOUND:
            return []
        self._raise_unavailable(result, "locations", query)
