"""Composition root: builds and owns every stateful component of the service."""

import time
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger

from ..services.openweathermap import OpenWeatherMapProvider
from ..services.provider import WeatherProvider
from ..services.repository import WeatherRepository
from ..services.validation import WeatherRequestValidator
from ..services.weather import WeatherService, utc_now
from .cache import TTLCache
from .config import Settings, settings
from .rate_limit import LayeredRateLimiter, TokenBucket


@dataclass
class Container:
    """Caches, rate limiters, provider and services for one application.

    Nothing mutable lives at module level; the application keeps one container
    on ``app.state`` and tests build their own with fake clocks and providers.

    Example:
        >>> async def example():
        ...     async with Container.from_settings() as container:
        ...         return container.weather_service.remaining_requests()
    """

    settings: Settings
    provider: WeatherProvider
    weather_cache: TTLCache
    forecast_cache: TTLCache
    location_cache: TTLCache
    upstream_limiter: TokenBucket
    request_limiter: LayeredRateLimiter
    validator: WeatherRequestValidator
    repository: WeatherRepository
    weather_service: WeatherService

    @classmethod
    def from_settings(
        cls,
        config: Settings | None = None,
        provider: WeatherProvider | None = None,
        clock: Callable[[], float] = time.monotonic,
        utc_clock: Callable[[], datetime] = utc_now,
    ) -> "Container":
        """Wire every component from configuration.

        Args:
            config: Settings to use, defaults to the environment-loaded settings
            provider: Weather provider, defaults to OpenWeatherMap
            clock: Monotonic clock shared by caches and rate limiters
            utc_clock: Wall clock used to decide which day is tomorrow
        """
        config = config or settings
        if provider is None:
            provider = OpenWeatherMapProvider(
                base_url=config.OPENWEATHERMAP_BASE_URL,
                api_key=config.OPENWEATHERMAP_API_KEY,
                timeout=config.UPSTREAM_TIMEOUT,
            )

        def make_cache(namespace: str, ttl: int) -> TTLCache:
            return TTLCache(
                namespace,
                ttl=ttl,
                max_size=config.CACHE_MAX_SIZE,
                clock=clock,
                max_waiters=config.REQUEST_COALESCE_LIMIT,
            )

        weather_cache = make_cache("weather", config.CACHE_WEATHER_TTL)
        forecast_cache = make_cache("forecast", config.CACHE_FORECAST_TTL)
        location_cache = make_cache("location", config.CACHE_LOCATION_TTL)

        upstream_limiter = TokenBucket(
            config.UPSTREAM_RATE_LIMIT,
            timedelta(seconds=config.UPSTREAM_RATE_LIMIT_WINDOW),
            clock=clock,
        )
        request_limiter = LayeredRateLimiter(
            global_limit=config.RATE_LIMIT_GLOBAL_DAILY,
            per_client_limit=config.RATE_LIMIT_PER_CLIENT_HOURLY,
            burst_limit=config.RATE_LIMIT_BURST,
            burst_window=timedelta(minutes=config.RATE_LIMIT_BURST_WINDOW_MINUTES),
            max_clients=config.RATE_LIMIT_MAX_CLIENTS,
            clock=clock,
        )

        validator = WeatherRequestValidator(
            max_locations=config.MAX_LOCATIONS_PER_REQUEST,
            ceiling_celsius=config.TEMPERATURE_CEILING_CELSIUS,
        )
        repository = WeatherRepository(
            provider,
            weather_cache,
            forecast_cache,
            location_cache,
            timeout=config.UPSTREAM_TIMEOUT,
            fallback_to_coordinates=config.LOCATION_FALLBACK_TO_COORDINATES,
        )
        weather_service = WeatherService(
            repository,
            upstream_limiter,
            validator,
            clock=utc_clock,
            forecast_days=config.DEFAULT_FORECAST_DAYS,
        )

        return cls(
            settings=config,
            provider=provider,
            weather_cache=weather_cache,
            forecast_cache=forecast_cache,
            location_cache=location_cache,
            upstream_limiter=upstream_limiter,
            request_limiter=request_limiter,
            validator=validator,
            repository=repository,
            weather_service=weather_service,
        )

    async def __aenter__(self) -> "Container":
        """Open the provider's connections if it manages any."""
        if isinstance(self.provider, AbstractAsyncContextManager):
            await self.provider.__aenter__()
        logger.info("Weather provider ready", provider=self.provider.name)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if isinstance(self.provider, AbstractAsyncContextManager):
            await self.provider.__aexit__(exc_type, exc_val, exc_tb)
        logger.info("Weather provider closed", provider=self.provider.name)

    def caches(self) -> list[TTLCache]:
        return [self.weather_cache, self.forecast_cache, self.location_cache]
