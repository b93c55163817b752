"""Validation of raw request parameters before any upstream call is made."""

from dataclasses import dataclass

from loguru import logger

from ..core.errors import ValidationError
from ..models.values import (
    Coordinates,
    InvalidValueError,
    Temperature,
    TemperatureUnit,
)

MIN_THRESHOLD_CELSIUS = -100.0
MAX_THRESHOLD_CELSIUS = 100.0


@dataclass(frozen=True)
class SummaryRequest:
    """Validated summary query."""

    coordinates: list[Coordinates]
    threshold: Temperature


class WeatherRequestValidator:
    """Turns query strings into value types or raises ``ValidationError``.

    Example:
        >>> validator = WeatherRequestValidator(max_locations=50)
        >>> request = validator.validate_summary_request("51.5074,-0.1278", "20", "celsius")
        >>> request.threshold.format()
        '20.0°C'
    """

    def __init__(
        self,
        max_locations: int = 50,
        min_threshold_celsius: float = MIN_THRESHOLD_CELSIUS,
        max_threshold_celsius: float = MAX_THRESHOLD_CELSIUS,
        ceiling_celsius: float | None = None,
    ):
        self.max_locations = max_locations
        self.min_threshold_celsius = min_threshold_celsius
        self.max_threshold_celsius = max_threshold_celsius
        self.ceiling_celsius = ceiling_celsius

    def validate_summary_request(
        self,
        locations: str | None,
        temperature: str | None,
        unit: str | None,
    ) -> SummaryRequest:
        """Validate the favourite locations query.

        Args:
            locations: Flat ``"lat1,lon1,lat2,lon2"`` list
            temperature: Threshold value
            unit: Threshold unit (celsius/fahrenheit/c/f), Celsius when missing

        Raises:
            ValidationError: With the reason of the first failed check
        """
        if not locations or not locations.strip():
            raise ValidationError("LOCATIONS_REQUIRED", "Parameter 'locations' is required")
        if not temperature or not temperature.strip():
            raise ValidationError("TEMPERATURE_REQUIRED", "Parameter 'temperature' is required")

        try:
            coordinates = Coordinates.parse_multiple(locations)
        except InvalidValueError as e:
            logger.debug("Rejected locations parameter", reason=e.reason)
            raise ValidationError("LOCATIONS_INVALID", e.message) from e

        if len(coordinates) > self.max_locations:
            raise ValidationError(
                "TOO_MANY_LOCATIONS",
                f"Maximum {self.max_locations} locations allowed, got {len(coordinates)}",
            )

        try:
            temperature_unit = TemperatureUnit.parse(unit)
        except InvalidValueError as e:
            raise ValidationError("UNIT_INVALID", e.message) from e

        return SummaryRequest(
            coordinates=coordinates,
            threshold=self.validate_threshold(temperature, temperature_unit),
        )

    def validate_threshold(self, temperature: str, unit: TemperatureUnit) -> Temperature:
        try:
            threshold = Temperature.parse(temperature, unit, self.ceiling_celsius)
        except InvalidValueError as e:
            reason = "TEMPERATURE_INVALID" if e.reason == "INVALID_NUMBER" else "TEMPERATURE_OUT_OF_RANGE"
            raise ValidationError(reason, e.message) from e

        celsius = threshold.to_celsius()
        if not self.min_threshold_celsius <= celsius <= self.max_threshold_celsius:
            raise ValidationError(
                "TEMPERATURE_OUT_OF_RANGE",
                f"Temperature must be between {self.min_threshold_celsius}°C and "
                f"{self.max_threshold_celsius}°C, got: {threshold.format()}",
            )
        return threshold

    def validate_location_request(self, location: str | None) -> Coordinates:
        """Validate a single ``"lat,lon"`` location id."""
        if not location or not location.strip():
            raise ValidationError("LOCATION_REQUIRED", "Location is required")
        try:
            return Coordinates.parse(location)
        except InvalidValueError as e:
            raise ValidationError("LOCATION_INVALID", e.message) from e
