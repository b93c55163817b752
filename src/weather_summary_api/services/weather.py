"""Weather summary service: rate limiting, orchestration and "tomorrow" selection."""

from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum

from loguru import logger

from ..core import local_time
from ..core.errors import RateLimitExceededError, ServiceUnavailableError
from ..core.rate_limit import TokenBucket
from ..models.values import Coordinates, Temperature
from ..models.weather import DailyForecast, LocationSummary, LocationWeatherDetails
from .repository import WeatherRepository
from .validation import WeatherRequestValidator


class SummaryState(str, Enum):
    """Progress of one location through a summary batch."""

    PENDING = "PENDING"
    LOCATION_RESOLVED = "LOCATION_RESOLVED"
    FORECAST_RESOLVED = "FORECAST_RESOLVED"
    INCLUDED = "INCLUDED"
    EXCLUDED = "EXCLUDED"
    FAILED = "FAILED"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def select_tomorrow_forecast(
    forecasts: list[DailyForecast],
    coordinates: Coordinates,
    now_utc: datetime,
) -> DailyForecast | None:
    """Pick the forecast entry for tomorrow at the location.

    The entry dated with the location's local tomorrow wins. When no entry
    carries that date, the second entry is used (the first is usually today),
    or the first if it is the only one.

    Example:
        >>> select_tomorrow_forecast([], Coordinates.of(0.0, 0.0), utc_now()) is None
        True
    """
    target = local_time.tomorrow(coordinates, now_utc)
    for forecast in forecasts:
        if forecast.date == target:
            return forecast

    if not forecasts:
        return None

    logger.debug(
        "No forecast dated tomorrow, using positional fallback",
        location=coordinates.to_coordinate_string(),
        tomorrow=target.isoformat(),
    )
    return forecasts[1] if len(forecasts) > 1 else forecasts[0]


class WeatherService:
    """Answers "which favourite locations are warmer than X tomorrow?".

    Every location in a batch costs one upstream rate limit token. Running out
    of tokens aborts the whole batch; any other per-location failure only
    drops that location from the result.

    Example:
        >>> async def example(service: "WeatherService"):
        ...     summaries = await service.summary_for_favorites("51.5074,-0.1278", "20", "celsius")
        ...     return [s.location_name for s in summaries]
    """

    def __init__(
        self,
        repository: WeatherRepository,
        rate_limiter: TokenBucket,
        validator: WeatherRequestValidator,
        clock: Callable[[], datetime] = utc_now,
        forecast_days: int = 5,
    ):
        """Initialize the service.

        Args:
            repository: Cached access to locations and forecasts
            rate_limiter: Upstream quota, one token per location lookup
            validator: Request parameter validation
            clock: Returns the current UTC time, replaceable in tests
            forecast_days: Days of forecast requested per location
        """
        self._repository = repository
        self._rate_limiter = rate_limiter
        self._validator = validator
        self._clock = clock
        self._forecast_days = forecast_days

    def _consume_token(self) -> None:
        if not self._rate_limiter.try_consume():
            raise RateLimitExceededError(
                "Rate limit exceeded. Please try again later.",
                layer=self._rate_limiter.name,
                retry_after=self._rate_limiter.time_until_available(),
            )

    async def summary_for_favorites(
        self,
        locations: str | None,
        temperature: str | None,
        unit: str | None,
    ) -> list[LocationSummary]:
        """Validate raw query parameters and build the summary.

        Raises:
            ValidationError: Before any upstream call when a parameter is invalid
            RateLimitExceededError: When the upstream quota runs out mid-batch
        """
        request = self._validator.validate_summary_request(locations, temperature, unit)
        return await self.get_weather_summary_for_favorites(request.coordinates, request.threshold)

    async def get_weather_summary_for_favorites(
        self,
        coordinates: list[Coordinates],
        threshold: Temperature,
    ) -> list[LocationSummary]:
        """Summaries of the locations whose maximum tomorrow is above the threshold.

        Locations are processed in input order and the result keeps that order.
        """
        logger.info(
            "Building weather summary",
            locations=len(coordinates),
            threshold=threshold.format(),
        )
        now = self._clock()
        summaries = []
        states: dict[SummaryState, int] = {}

        for coords in coordinates:
            self._consume_token()
            state, summary = await self._summarize_location(coords, threshold, now)
            states[state] = states.get(state, 0) + 1
            if summary is not None:
                summaries.append(summary)

        logger.info(
            "Weather summary built",
            included=states.get(SummaryState.INCLUDED, 0),
            excluded=states.get(SummaryState.EXCLUDED, 0),
            failed=states.get(SummaryState.FAILED, 0),
        )
        return summaries

    async def _summarize_location(
        self,
        coordinates: Coordinates,
        threshold: Temperature,
        now: datetime,
    ) -> tuple[SummaryState, LocationSummary | None]:
        location_id = coordinates.to_coordinate_string()
        state = SummaryState.PENDING
        try:
            location = await self._repository.get_location_by_id(location_id)
            if location is None:
                logger.warning("Skipping unresolved location", location=location_id)
                return SummaryState.FAILED, None
            state = SummaryState.LOCATION_RESOLVED

            forecast = await self._repository.get_forecast(location, self._forecast_days)
            if forecast is None:
                logger.warning("Skipping location without forecast", location=location_id)
                return SummaryState.FAILED, None
            state = SummaryState.FORECAST_RESOLVED

            tomorrow = select_tomorrow_forecast(forecast.forecasts, coordinates, now)

        except ServiceUnavailableError as e:
            logger.warning(
                "Skipping location after upstream failure",
                location=location_id,
                state=state.value,
                error=e.message,
            )
            return SummaryState.FAILED, None

        except Exception:
            logger.exception(
                "Unexpected error while summarizing location",
                location=location_id,
                state=state.value,
            )
            return SummaryState.FAILED, None

        if tomorrow is None or not tomorrow.temperature_max.is_above(threshold):
            logger.debug("Location below threshold", location=location_id)
            return SummaryState.EXCLUDED, None

        summary = LocationSummary(
            location_id=location_id,
            location_name=location.name,
            country=location.country,
            tomorrow_max_temperature=round(tomorrow.temperature_max.to_unit(threshold.unit), 1),
            temperature_unit=threshold.unit.value,
            weather_description=tomorrow.description,
        )
        return SummaryState.INCLUDED, summary

    async def location_details(self, location: str | None) -> LocationWeatherDetails | None:
        """Validate a ``"lat,lon"`` location id and fetch its details.

        Raises:
            ValidationError: When the id is missing or malformed
        """
        coordinates = self._validator.validate_location_request(location)
        return await self.get_location_weather_details(coordinates)

    async def get_location_weather_details(
        self,
        coordinates: Coordinates,
    ) -> LocationWeatherDetails | None:
        """Location and multi-day forecast for one coordinate pair.

        Returns:
            Details, or None when the location or its forecast cannot be resolved

        Raises:
            RateLimitExceededError: When the upstream quota is exhausted
            ServiceUnavailableError: On upstream failure or unexpected fault
        """
        self._consume_token()
        location_id = coordinates.to_coordinate_string()
        try:
            location = await self._repository.get_location_by_id(location_id)
            if location is None:
                return None
            forecast = await self._repository.get_forecast(location, self._forecast_days)
            if forecast is None:
                return None

        except ServiceUnavailableError:
            raise

        except Exception as e:
            logger.exception("Unexpected error fetching location details", location=location_id)
            raise ServiceUnavailableError(
                "Unable to fetch weather data. Please try again later."
            ) from e

        return LocationWeatherDetails(location=location, forecast=forecast)

    def remaining_requests(self) -> int:
        """Upstream tokens left in the current window."""
        return self._rate_limiter.remaining()
