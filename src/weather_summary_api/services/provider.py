"""Upstream weather provider contract.

Providers never raise for expected failures; every call returns either
``Success`` with the data or ``Failure`` with a classified error.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

from ..models.weather import Location, WeatherData, WeatherForecast

T = TypeVar("T")


class ProviderErrorCode(str, Enum):
    """Classification of upstream failures."""

    NETWORK_ERROR = "NETWORK_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    INVALID_API_KEY = "INVALID_API_KEY"
    LOCATION_NOT_FOUND = "LOCATION_NOT_FOUND"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


@dataclass(frozen=True)
class ProviderError:
    code: ProviderErrorCode
    message: str


@dataclass(frozen=True)
class Success(Generic[T]):
    """Successful provider call.

    Example:
        >>> result = Success(42)
        >>> result.is_success, result.get_or_none()
        (True, 42)
    """

    data: T

    @property
    def is_success(self) -> bool:
        return True

    def get_or_none(self) -> T | None:
        return self.data


@dataclass(frozen=True)
class Failure:
    """Failed provider call.

    Example:
        >>> result = Failure(ProviderError(ProviderErrorCode.NETWORK_ERROR, "timed out"))
        >>> result.is_success, result.get_or_none()
        (False, None)
    """

    error: ProviderError

    @property
    def is_success(self) -> bool:
        return False

    def get_or_none(self) -> None:
        return None


ProviderResult = Success[T] | Failure


class WeatherProvider(ABC):
    """Source of weather, forecast and geocoding data."""

    name: str = "unknown"

    @abstractmethod
    async def get_current_weather(
        self, latitude: float, longitude: float
    ) -> "ProviderResult[WeatherData]":
        """Fetch current conditions for the coordinates."""

    @abstractmethod
    async def get_forecast(
        self, latitude: float, longitude: float, days: int = 5
    ) -> "ProviderResult[WeatherForecast]":
        """Fetch a daily forecast covering ``days`` days."""

    @abstractmethod
    async def get_location_details(
        self, latitude: float, longitude: float
    ) -> "ProviderResult[Location]":
        """Reverse geocode the coordinates."""

    @abstractmethod
    async def search_locations(self, query: str) -> "ProviderResult[list[Location]]":
        """Find locations matching a place name."""
