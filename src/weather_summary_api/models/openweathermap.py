"""Response models for the OpenWeatherMap API."""

from pydantic import BaseModel, ConfigDict, Field


class OpenWeatherMapModel(BaseModel):
    """Base for upstream payloads; unknown fields are ignored."""

    model_config = ConfigDict(extra="ignore")


class OpenWeatherMapCoord(OpenWeatherMapModel):
    lat: float
    lon: float


class OpenWeatherMapCondition(OpenWeatherMapModel):
    """Weather condition entry.

    Example:
        >>> OpenWeatherMapCondition(id=800, main="Clear", description="clear sky").description
        'clear sky'
    """

    id: int
    main: str
    description: str
    icon: str | None = None


class OpenWeatherMapMain(OpenWeatherMapModel):
    temp: float
    feels_like: float | None = None
    temp_min: float
    temp_max: float
    pressure: int
    humidity: int


class OpenWeatherMapWind(OpenWeatherMapModel):
    speed: float
    deg: int | None = None


class OpenWeatherMapSys(OpenWeatherMapModel):
    country: str | None = None


class OpenWeatherMapCurrentResponse(OpenWeatherMapModel):
    """Payload of ``/data/2.5/weather``."""

    coord: OpenWeatherMapCoord
    weather: list[OpenWeatherMapCondition] = Field(default_factory=list)
    main: OpenWeatherMapMain
    wind: OpenWeatherMapWind
    dt: int
    sys: OpenWeatherMapSys = Field(default_factory=OpenWeatherMapSys)
    name: str = ""


class OpenWeatherMapForecastItem(OpenWeatherMapModel):
    """One 3-hour forecast slot."""

    dt: int
    main: OpenWeatherMapMain
    weather: list[OpenWeatherMapCondition] = Field(default_factory=list)
    wind: OpenWeatherMapWind


class OpenWeatherMapCity(OpenWeatherMapModel):
    name: str = ""
    country: str | None = None
    coord: OpenWeatherMapCoord
    timezone: int | None = Field(default=None, description="Shift in seconds from UTC")


class OpenWeatherMapForecastResponse(OpenWeatherMapModel):
    """Payload of ``/data/2.5/forecast``."""

    items: list[OpenWeatherMapForecastItem] = Field(alias="list")
    city: OpenWeatherMapCity


class OpenWeatherMapGeocodingResult(OpenWeatherMapModel):
    """Entry of ``/geo/1.0/reverse`` and ``/geo/1.0/direct``.

    Example:
        >>> OpenWeatherMapGeocodingResult(name="London", lat=51.5073, lon=-0.1276, country="GB").country
        'GB'
    """

    name: str
    lat: float
    lon: float
    country: str | None = None
    state: str | None = None
