"""Application configuration using Pydantic Settings."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings have sensible defaults but can be overridden via environment variables.
    Configuration is validated at startup and the application will fail fast if invalid.

    Example:
        >>> settings = Settings()
        >>> settings.UPSTREAM_TIMEOUT >= 0.1
        True
        >>> settings.CACHE_FORECAST_TTL
        3600
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Upstream API Configuration
    UPSTREAM_TIMEOUT: float = Field(
        default=5.0,
        description="Timeout for OpenWeatherMap API requests in seconds",
        ge=0.1,
        le=30.0,
    )
    OPENWEATHERMAP_BASE_URL: str = Field(
        default="https://api.openweathermap.org",
        description="Base URL for OpenWeatherMap API",
    )
    OPENWEATHERMAP_API_KEY: str | None = Field(
        default=None,
        description="API key for OpenWeatherMap (sent as appid)",
    )

    # Retry Configuration
    RETRY_COUNT: int = Field(
        default=0,
        description="Maximum number of retries on transient upstream failure",
        ge=0,
        le=10,
    )
    RETRY_DELAY: int = Field(
        default=100,
        description="Initial retry delay in milliseconds",
        ge=10,
        le=5000,
    )
    RETRY_BACKOFF_MULTIPLIER: float = Field(
        default=2.0,
        description="Exponential backoff multiplier for retries",
        ge=1.0,
        le=10.0,
    )

    # Cache Configuration
    CACHE_WEATHER_TTL: int = Field(
        default=900,
        description="Current weather cache TTL in seconds",
        ge=1,
        le=86400,
    )
    CACHE_FORECAST_TTL: int = Field(
        default=3600,
        description="Forecast cache TTL in seconds",
        ge=1,
        le=86400,
    )
    CACHE_LOCATION_TTL: int = Field(
        default=86400,
        description="Location cache TTL in seconds",
        ge=1,
        le=604800,
    )
    CACHE_MAX_SIZE: int = Field(
        default=10000,
        description="Maximum number of cached entries per namespace (LRU eviction)",
        ge=1,
        le=1000000,
    )

    # Request Coalescing
    REQUEST_COALESCE_LIMIT: int = Field(
        default=100,
        description="Max concurrent waiters per cache key to prevent unbounded memory growth",
        ge=1,
        le=10000,
    )

    # Rate Limiting
    UPSTREAM_RATE_LIMIT: int = Field(
        default=1000,
        description="Upstream requests allowed per upstream rate limit window",
        ge=1,
    )
    UPSTREAM_RATE_LIMIT_WINDOW: int = Field(
        default=86400,
        description="Upstream rate limit window in seconds",
        ge=1,
    )
    RATE_LIMIT_GLOBAL_DAILY: int = Field(
        default=1000,
        description="Requests per day accepted from all clients together",
        ge=1,
    )
    RATE_LIMIT_PER_CLIENT_HOURLY: int = Field(
        default=100,
        description="Requests per hour accepted from a single client",
        ge=1,
    )
    RATE_LIMIT_BURST: int = Field(
        default=10,
        description="Requests accepted from a single client within the burst window",
        ge=1,
    )
    RATE_LIMIT_BURST_WINDOW_MINUTES: int = Field(
        default=5,
        description="Burst window in minutes",
        ge=1,
        le=60,
    )
    RATE_LIMIT_MAX_CLIENTS: int = Field(
        default=10000,
        description="Maximum number of tracked clients per rate limit layer",
        ge=1,
    )

    # Request Validation
    MAX_LOCATIONS_PER_REQUEST: int = Field(
        default=50,
        description="Maximum number of locations in a summary request",
        ge=1,
        le=500,
    )
    DEFAULT_FORECAST_DAYS: int = Field(
        default=5,
        description="Number of forecast days returned by the location endpoint",
        ge=1,
        le=5,
    )
    TEMPERATURE_CEILING_CELSIUS: float | None = Field(
        default=None,
        description="Optional upper bound for temperatures (Celsius-equivalent), off when unset",
    )
    LOCATION_FALLBACK_TO_COORDINATES: bool = Field(
        default=True,
        description="Build a location from raw coordinates when reverse geocoding has no result",
    )

    # Server Configuration
    HOST: str = Field(
        default="0.0.0.0",
        description="Interface the server binds to",
    )
    PORT: int = Field(
        default=8000,
        description="Server port",
        ge=1,
        le=65535,
    )

    # Logging Configuration
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    # Environment Configuration
    ENVIRONMENT: str = Field(
        default="development",
        description="Environment (development, staging, production)",
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that LOG_LEVEL is a valid logging level.

        Args:
            v: The log level string to validate

        Returns:
            The uppercase log level string

        Raises:
            ValueError: If the log level is invalid

        Example:
            >>> Settings(LOG_LEVEL="info").LOG_LEVEL
            'INFO'
        """
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}, got {v}")
        return v_upper

    @field_validator("OPENWEATHERMAP_BASE_URL")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Validate that the base URL is properly formatted.

        Returns:
            The URL string without trailing slash

        Example:
            >>> Settings(OPENWEATHERMAP_BASE_URL="https://api.example.com/").OPENWEATHERMAP_BASE_URL
            'https://api.example.com'
        """
        if not v.startswith(("http://", "https://")):
            raise ValueError("OPENWEATHERMAP_BASE_URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("TEMPERATURE_CEILING_CELSIUS")
    @classmethod
    def validate_temperature_ceiling(cls, v: float | None) -> float | None:
        """Reject a ceiling at or below absolute zero."""
        if v is not None and v <= -273.15:
            raise ValueError("TEMPERATURE_CEILING_CELSIUS must be above absolute zero")
        return v


# Global settings instance
settings = Settings()
