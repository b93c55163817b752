"""Weather domain entities and API response models."""

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .values import Coordinates, Temperature


class Location(BaseModel):
    """A resolved geographic location.

    The id is the ``"lat,lon"`` coordinate string the location was requested with.

    Example:
        >>> loc = Location.from_coordinates(Coordinates.of(51.5074, -0.1278))
        >>> loc.id
        '51.5074,-0.1278'
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    country: str = Field(..., min_length=1)
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)

    @field_validator("id", "name", "country")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    @classmethod
    def from_coordinates(
        cls,
        coordinates: Coordinates,
        name: str | None = None,
        country: str | None = None,
    ) -> "Location":
        """Build a location straight from coordinates when no provider data exists."""
        coordinate_string = coordinates.to_coordinate_string()
        return cls(
            id=coordinate_string,
            name=name or coordinate_string,
            country=country or "N/A",
            latitude=coordinates.latitude,
            longitude=coordinates.longitude,
        )

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates.of(self.latitude, self.longitude)


class WeatherData(BaseModel):
    """Current weather conditions for a location."""

    model_config = ConfigDict(frozen=True)

    location: Location
    timestamp: dt.datetime
    temperature: Temperature
    description: str = Field(..., min_length=1)
    humidity: int = Field(..., ge=0, le=100)
    wind_speed: float = Field(..., ge=0.0)
    pressure: int = Field(..., gt=0)


class DailyForecast(BaseModel):
    """Aggregated forecast for one calendar day."""

    model_config = ConfigDict(frozen=True)

    date: dt.date
    temperature_min: Temperature
    temperature_max: Temperature
    description: str
    humidity: int
    wind_speed: float
    pressure: int


class WeatherForecast(BaseModel):
    """Multi-day forecast, ordered ascending by date."""

    model_config = ConfigDict(frozen=True)

    location: Location
    forecasts: list[DailyForecast]

    @field_validator("forecasts")
    @classmethod
    def sort_by_date(cls, v: list[DailyForecast]) -> list[DailyForecast]:
        return sorted(v, key=lambda f: f.date)


class LocationSummary(BaseModel):
    """A location whose maximum temperature tomorrow is above the requested threshold."""

    model_config = ConfigDict(frozen=True)

    location_id: str
    location_name: str
    country: str
    tomorrow_max_temperature: float
    temperature_unit: str
    weather_description: str


class LocationWeatherDetails(BaseModel):
    """Location together with its multi-day forecast."""

    model_config = ConfigDict(frozen=True)

    location: Location
    forecast: WeatherForecast


class ResponseMetadata(BaseModel):
    """Metadata attached to every API response.

    Example:
        >>> meta = ResponseMetadata(timestamp="2026-01-11T10:12:54Z", rateLimitRemaining=42)
        >>> meta.source
        'weather-integration-api'
    """

    timestamp: str = Field(..., description="ISO 8601 UTC timestamp of the response")
    source: str = Field(default="weather-integration-api", description="Data source identifier")
    rateLimitRemaining: int | None = Field(
        default=None,
        description="Upstream requests left in the current rate limit window",
    )


class LocationSummaryModel(BaseModel):
    """Location entry in the summary response."""

    locationId: str
    locationName: str
    country: str
    tomorrowMaxTemperature: float
    temperatureUnit: str
    weatherDescription: str

    @classmethod
    def from_summary(cls, summary: LocationSummary) -> "LocationSummaryModel":
        return cls(
            locationId=summary.location_id,
            locationName=summary.location_name,
            country=summary.country,
            tomorrowMaxTemperature=summary.tomorrow_max_temperature,
            temperatureUnit=summary.temperature_unit,
            weatherDescription=summary.weather_description,
        )


class WeatherSummaryResponse(BaseModel):
    """Summary of favourite locations warmer than the threshold tomorrow."""

    locations: list[LocationSummaryModel]
    metadata: ResponseMetadata


class LocationModel(BaseModel):
    """Location as returned to clients."""

    id: str
    name: str
    country: str
    latitude: float
    longitude: float

    @classmethod
    def from_location(cls, location: Location) -> "LocationModel":
        return cls(
            id=location.id,
            name=location.name,
            country=location.country,
            latitude=location.latitude,
            longitude=location.longitude,
        )


class DailyForecastModel(BaseModel):
    """Daily forecast as returned to clients (temperatures in Celsius)."""

    date: str = Field(..., description="ISO date (YYYY-MM-DD)")
    temperatureMin: float
    temperatureMax: float
    temperatureUnit: str = "celsius"
    description: str
    humidity: int
    windSpeed: float
    pressure: int

    @classmethod
    def from_forecast(cls, forecast: DailyForecast) -> "DailyForecastModel":
        return cls(
            date=forecast.date.isoformat(),
            temperatureMin=round(forecast.temperature_min.to_celsius(), 1),
            temperatureMax=round(forecast.temperature_max.to_celsius(), 1),
            description=forecast.description,
            humidity=forecast.humidity,
            windSpeed=round(forecast.wind_speed, 1),
            pressure=forecast.pressure,
        )


class LocationWeatherResponse(BaseModel):
    """Location details with its forecast."""

    location: LocationModel
    forecast: list[DailyForecastModel]
    metadata: ResponseMetadata


class ErrorDetails(BaseModel):
    """Error code and human-readable message."""

    code: str
    message: str
    details: str | None = None


class ErrorResponse(BaseModel):
    """Error envelope returned for every failed request.

    Example:
        >>> body = ErrorResponse(
        ...     error=ErrorDetails(code="NOT_FOUND", message="Location not found"),
        ...     metadata=ResponseMetadata(timestamp="2026-01-11T10:12:54Z"),
        ... )
        >>> body.error.code
        'NOT_FOUND'
    """

    error: ErrorDetails
    metadata: ResponseMetadata
