"""FastAPI dependencies for request handling."""

from typing import Annotated

from fastapi import Depends, Request

from ..core.container import Container
from ..core.errors import RateLimitExceededError
from ..services.weather import WeatherService


def get_container(request: Request) -> Container:
    """Container built by the application lifespan.

    Tests replace this dependency through ``app.dependency_overrides``.
    """
    return request.app.state.container


def get_weather_service(
    container: Annotated[Container, Depends(get_container)],
) -> WeatherService:
    return container.weather_service


def client_key(request: Request) -> str:
    """Identify the caller for per-client rate limiting.

    Uses the first address of ``X-Forwarded-For`` when present, otherwise the
    socket peer address.

    Example:
        >>> # X-Forwarded-For: 203.0.113.7, 10.0.0.1
        >>> # Returns: "203.0.113.7"
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client is not None:
        return request.client.host
    return "unknown"


def enforce_rate_limit(
    request: Request,
    container: Annotated[Container, Depends(get_container)],
) -> None:
    """Admit the request through the global, per-client and burst limits.

    Raises:
        RateLimitExceededError: Carrying the rejecting layer and retry delay
    """
    decision = container.request_limiter.try_acquire(client_key(request))
    if decision.admitted:
        return

    if decision.layer == container.request_limiter.BURST:
        message = "Burst protection triggered. Please slow down."
    else:
        message = "Rate limit exceeded. Please try again later."
    raise RateLimitExceededError(message, layer=decision.layer, retry_after=decision.retry_after)
