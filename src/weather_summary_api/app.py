"""Main FastAPI application."""

import math
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from loguru import logger
from opentelemetry import metrics
from opentelemetry.exporter.prometheus import PrometheusMetricReader
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import Resource
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

from .api import health, routes
from .api.routes import build_metadata
from .core.config import settings
from .core.container import Container
from .core.errors import (
    NotFoundError,
    RateLimitExceededError,
    ServiceUnavailableError,
    ValidationError,
    WeatherServiceError,
)
from .models.weather import ErrorDetails, ErrorResponse

STATUS_CODES = {
    ValidationError: 400,
    NotFoundError: 404,
    RateLimitExceededError: 429,
    ServiceUnavailableError: 503,
}


def setup_logging():
    """Configure loguru for structured logging.

    Sets up logging with the configured log level from settings.
    Logs are written to stderr with structured format.
    """
    logger.remove()

    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level> | {extra}",
        level=settings.LOG_LEVEL,
        serialize=False,
        colorize=True,
        backtrace=True,
        diagnose=settings.ENVIRONMENT != "production",
    )

    logger.info(
        "Logging configured",
        level=settings.LOG_LEVEL,
    )


def setup_metrics():
    """Configure OpenTelemetry metrics with Prometheus exporter.

    Metrics are exposed at /metrics endpoint compatible with Prometheus scraping.
    """
    reader = PrometheusMetricReader()

    resource = Resource.create(
        {
            "service.name": "weather-summary-api",
            "service.version": "0.1.0",
            "deployment.environment": settings.ENVIRONMENT,
        }
    )

    provider = MeterProvider(
        resource=resource,
        metric_readers=[reader],
    )

    metrics.set_meter_provider(provider)

    logger.info("OpenTelemetry metrics configured")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager.

    Handles startup and shutdown events:
    - Startup: Log configuration, build the service container, open the provider client
    - Shutdown: Close the provider client

    Example:
        >>> # Used automatically by FastAPI
        >>> app = FastAPI(lifespan=lifespan)
    """
    logger.info("Starting Weather Summary API")

    logger.info(
        "Configuration loaded",
        environment=settings.ENVIRONMENT,
        upstream_timeout=settings.UPSTREAM_TIMEOUT,
        cache_weather_ttl=settings.CACHE_WEATHER_TTL,
        cache_forecast_ttl=settings.CACHE_FORECAST_TTL,
        cache_location_ttl=settings.CACHE_LOCATION_TTL,
        cache_max_size=settings.CACHE_MAX_SIZE,
        upstream_rate_limit=settings.UPSTREAM_RATE_LIMIT,
        rate_limit_global_daily=settings.RATE_LIMIT_GLOBAL_DAILY,
        rate_limit_per_client_hourly=settings.RATE_LIMIT_PER_CLIENT_HOURLY,
        rate_limit_burst=settings.RATE_LIMIT_BURST,
        retry_count=settings.RETRY_COUNT,
        request_coalesce_limit=settings.REQUEST_COALESCE_LIMIT,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL,
        openweathermap_base_url=settings.OPENWEATHERMAP_BASE_URL,
        # Do NOT log API key
    )
    if not settings.OPENWEATHERMAP_API_KEY:
        logger.warning("OPENWEATHERMAP_API_KEY is not set, upstream calls will be rejected")

    async with Container.from_settings(settings) as container:
        app.state.container = container
        logger.info("Application ready to serve requests")

        yield

        logger.info("Shutting down Weather Summary API")
        app.state.container = None


setup_logging()

setup_metrics()

app = FastAPI(
    title="Weather Summary API",
    description="REST API that reports which favourite locations will be warmer than a threshold tomorrow, backed by OpenWeatherMap",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.LOG_LEVEL == "DEBUG" else None,  # Swagger UI only in debug mode
    redoc_url=None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["Health"])
app.include_router(routes.router, tags=["Weather"])


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: str | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    """Build the error envelope with its ``X-Error-Code`` header.

    Example:
        >>> error_response(404, "NOT_FOUND", "Location not found").headers["x-error-code"]
        'NOT_FOUND'
    """
    body = ErrorResponse(
        error=ErrorDetails(code=code, message=message, details=details),
        metadata=build_metadata(),
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(),
        headers={"X-Error-Code": code, **(headers or {})},
    )


@app.get("/metrics", include_in_schema=False)
async def metrics_endpoint():
    """Prometheus metrics endpoint.

    Exposes OpenTelemetry metrics in Prometheus format for scraping.
    This endpoint is open to everyone (no authentication).
    """
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)


@app.exception_handler(WeatherServiceError)
async def weather_service_exception_handler(request: Request, exc: WeatherServiceError):
    """Map domain errors onto HTTP status codes and the error envelope."""
    status_code = STATUS_CODES.get(type(exc), 500)
    headers = {}
    details = None

    if isinstance(exc, ValidationError):
        details = exc.reason
    if isinstance(exc, RateLimitExceededError):
        details = exc.layer
        if exc.retry_after is not None:
            headers["Retry-After"] = str(max(1, math.ceil(exc.retry_after.total_seconds())))

    log = logger.error if status_code >= 500 else logger.warning
    log(
        "Request failed",
        path=request.url.path,
        code=exc.code,
        status_code=status_code,
        error=exc.message,
    )
    return error_response(status_code, exc.code, exc.message, details, headers)


@app.exception_handler(RequestValidationError)
async def request_validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report malformed requests with the same envelope as domain validation errors."""
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    logger.warning("Request validation failed", path=request.url.path, error=message)
    return error_response(400, ValidationError.code, message)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors.

    Logs the exception and returns a generic error response to avoid
    exposing internal details to clients.
    """
    logger.exception(
        "Unhandled exception",
        path=request.url.path,
        method=request.method,
    )

    return error_response(500, WeatherServiceError.code, "An unexpected error occurred")


FastAPIInstrumentor.instrument_app(app)

logger.info("FastAPI application created")
