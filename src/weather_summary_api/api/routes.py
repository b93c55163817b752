"""API routes for weather endpoints."""

from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Path, Query
from loguru import logger

from ..core.errors import NotFoundError
from ..models.weather import (
    DailyForecastModel,
    ErrorResponse,
    LocationModel,
    LocationSummaryModel,
    LocationWeatherResponse,
    ResponseMetadata,
    WeatherSummaryResponse,
)
from ..services.weather import WeatherService
from .dependencies import enforce_rate_limit, get_weather_service

router = APIRouter(prefix="/api/v1/weather", dependencies=[Depends(enforce_rate_limit)])


def build_metadata(service: WeatherService | None = None) -> ResponseMetadata:
    """Response metadata stamped with the current UTC time.

    Example:
        >>> build_metadata().source
        'weather-integration-api'
    """
    return ResponseMetadata(
        timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        rateLimitRemaining=service.remaining_requests() if service is not None else None,
    )


_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid parameters"},
    429: {"model": ErrorResponse, "description": "Rate limit or burst protection triggered"},
    503: {"model": ErrorResponse, "description": "Weather provider unavailable"},
}


@router.get(
    "/summary",
    response_model=WeatherSummaryResponse,
    summary="Favourite locations warmer than a threshold tomorrow",
    description="Return the favourite locations whose forecast maximum temperature tomorrow is above the threshold",
    responses={
        200: {
            "description": "Locations above the threshold",
            "content": {
                "application/json": {
                    "example": {
                        "locations": [
                            {
                                "locationId": "51.5074,-0.1278",
                                "locationName": "London",
                                "country": "GB",
                                "tomorrowMaxTemperature": 25.0,
                                "temperatureUnit": "celsius",
                                "weatherDescription": "clear sky",
                            }
                        ],
                        "metadata": {
                            "timestamp": "2026-01-11T10:12:54Z",
                            "source": "weather-integration-api",
                            "rateLimitRemaining": 999,
                        },
                    }
                }
            },
        },
        **_ERROR_RESPONSES,
    },
)
async def get_weather_summary(
    service: Annotated[WeatherService, Depends(get_weather_service)],
    locations: Annotated[
        str | None,
        Query(
            description="Comma separated coordinate pairs: lat1,lon1,lat2,lon2",
            examples=["51.5074,-0.1278,48.8566,2.3522"],
        ),
    ] = None,
    temperature: Annotated[
        str | None,
        Query(description="Temperature threshold", examples=["20"]),
    ] = None,
    unit: Annotated[
        str | None,
        Query(description="Threshold unit: celsius (default) or fahrenheit", examples=["celsius"]),
    ] = None,
) -> WeatherSummaryResponse:
    """Get the favourite locations warmer than ``temperature`` tomorrow.

    Parameters arrive as raw strings and are validated by the service, so a
    malformed value produces the usual error envelope instead of a 422.

    Example:
        >>> # GET /api/v1/weather/summary?locations=51.5074,-0.1278&temperature=20
        >>> # Returns: {"locations": [{"locationName": "London", ...}], "metadata": {...}}
    """
    summaries = await service.summary_for_favorites(locations, temperature, unit)
    logger.info("Weather summary request served", matches=len(summaries))

    return WeatherSummaryResponse(
        locations=[LocationSummaryModel.from_summary(s) for s in summaries],
        metadata=build_metadata(service),
    )


@router.get(
    "/locations/{location_id}",
    response_model=LocationWeatherResponse,
    summary="Location details with forecast",
    description="Return the location and its daily forecast for the given 'lat,lon' id",
    responses={
        404: {"model": ErrorResponse, "description": "Location not found"},
        **_ERROR_RESPONSES,
    },
)
async def get_location_weather(
    location_id: Annotated[
        str,
        Path(description="Location id in 'lat,lon' form", examples=["51.5074,-0.1278"]),
    ],
    service: Annotated[WeatherService, Depends(get_weather_service)],
) -> LocationWeatherResponse:
    """Get location details and its forecast.

    Example:
        >>> # GET /api/v1/weather/locations/51.5074,-0.1278
        >>> # Returns: {"location": {...}, "forecast": [...], "metadata": {...}}
    """
    details = await service.location_details(location_id)
    if details is None:
        raise NotFoundError(f"Location not found: {location_id}")

    return LocationWeatherResponse(
        location=LocationModel.from_location(details.location),
        forecast=[DailyForecastModel.from_forecast(f) for f in details.forecast.forecasts],
        metadata=build_metadata(service),
    )
