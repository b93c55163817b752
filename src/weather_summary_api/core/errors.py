"""Domain errors raised by the weather services."""

from datetime import timedelta


class WeatherServiceError(Exception):
    """Base exception for weather service errors.

    Each subclass carries a stable ``code`` used in the HTTP error envelope.
    """

    code = "INTERNAL_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(WeatherServiceError):
    """Raised when request input is malformed or out of range.

    Example:
        >>> err = ValidationError("TOO_MANY_LOCATIONS", "Maximum 50 locations allowed")
        >>> err.reason
        'TOO_MANY_LOCATIONS'
    """

    code = "VALIDATION_ERROR"

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


class NotFoundError(WeatherServiceError):
    """Raised when a location cannot be resolved."""

    code = "NOT_FOUND"


class RateLimitExceededError(WeatherServiceError):
    """Raised when a rate limit bucket is exhausted.

    ``layer`` names the bucket that rejected the request so callers can tell
    burst protection apart from the regular quotas.
    """

    code = "RATE_LIMIT_EXCEEDED"

    def __init__(
        self,
        message: str = "Rate limit exceeded. Please try again later.",
        layer: str = "upstream",
        retry_after: timedelta | None = None,
    ):
        super().__init__(message)
        self.layer = layer
        self.retry_after = retry_after
        if layer == "burst":
            self.code = "BURST_LIMIT_EXCEEDED"


class ServiceUnavailableError(WeatherServiceError):
    """Raised when the upstream provider fails, times out or faults."""

    code = "SERVICE_UNAVAILABLE"
