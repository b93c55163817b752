"""Validated value types: coordinates and unit-aware temperatures.

These types only depend on pydantic. Invalid input raises ``InvalidValueError``
(a ``ValueError``) with a machine-readable ``reason``; the service layer turns
that into a caller-facing validation error.
"""

import math
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic import model_validator

ABSOLUTE_ZERO_CELSIUS = -273.15

# Tolerates float noise when converting -459.67°F back to Celsius
_ABSOLUTE_ZERO_TOLERANCE = 1e-9


class InvalidValueError(ValueError):
    """Raised when a value type cannot be built from the given input.

    Example:
        >>> err = InvalidValueError("OUT_OF_RANGE", "Latitude must be between -90 and 90")
        >>> err.reason
        'OUT_OF_RANGE'
    """

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason
        self.message = message


class Coordinates(BaseModel):
    """Geographic coordinates in decimal degrees.

    Immutable and compared by value. Serialises to the ``"lat,lon"`` form
    used as location id throughout the service.

    Example:
        >>> coords = Coordinates.parse("51.5074,-0.1278")
        >>> coords.latitude, coords.longitude
        (51.5074, -0.1278)
        >>> coords.to_coordinate_string()
        '51.5074,-0.1278'
    """

    model_config = ConfigDict(frozen=True)

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)

    @classmethod
    def of(cls, latitude: float, longitude: float) -> "Coordinates":
        """Create coordinates, raising ``InvalidValueError`` when out of range.

        Example:
            >>> Coordinates.of(0.0, 0.0) == Coordinates.of(0.0, 0.0)
            True
        """
        try:
            return cls(latitude=latitude, longitude=longitude)
        except PydanticValidationError as e:
            raise InvalidValueError(
                "OUT_OF_RANGE",
                "Latitude must be between -90 and 90 and longitude between -180 and 180, "
                f"got: {latitude},{longitude}",
            ) from e

    @classmethod
    def parse(cls, coordinate_string: str) -> "Coordinates":
        """Parse coordinates from ``"lat,lon"``.

        Raises:
            InvalidValueError: On wrong field count, non-numeric fields or out-of-range values

        Example:
            >>> Coordinates.parse(" 35.6762 , 139.6503 ").longitude
            139.6503
        """
        parts = coordinate_string.strip().split(",")
        if len(parts) != 2:
            raise InvalidValueError(
                "INVALID_FORMAT",
                f"Invalid coordinate format: '{coordinate_string}'. Expected format: 'lat,lon'",
            )
        latitude = _parse_float(parts[0], "latitude")
        longitude = _parse_float(parts[1], "longitude")
        return cls.of(latitude, longitude)

    @classmethod
    def parse_multiple(cls, coordinates_string: str) -> list["Coordinates"]:
        """Parse a flat ``"lat1,lon1,lat2,lon2,..."`` list into coordinate pairs.

        Blank tokens are ignored, so a trailing comma is harmless.

        Example:
            >>> [c.to_coordinate_string() for c in Coordinates.parse_multiple("1,2,3,4")]
            ['1.0,2.0', '3.0,4.0']
        """
        parts = [p.strip() for p in coordinates_string.split(",") if p.strip()]
        if len(parts) < 2:
            raise InvalidValueError("INVALID_FORMAT", "At least one coordinate pair required")
        if len(parts) % 2 != 0:
            raise InvalidValueError("INVALID_FORMAT", "Coordinates must be in pairs (lat,lon)")

        return [
            cls.of(_parse_float(parts[i], "latitude"), _parse_float(parts[i + 1], "longitude"))
            for i in range(0, len(parts), 2)
        ]

    def to_coordinate_string(self) -> str:
        return f"{self.latitude},{self.longitude}"

    def __str__(self) -> str:
        return self.to_coordinate_string()


def _parse_float(raw: str, field: str) -> float:
    try:
        return float(raw.strip())
    except ValueError:
        raise InvalidValueError("INVALID_NUMBER", f"Invalid {field}: '{raw}'") from None


class TemperatureUnit(str, Enum):
    """Supported temperature units."""

    CELSIUS = "celsius"
    FAHRENHEIT = "fahrenheit"

    @property
    def symbol(self) -> str:
        return "C" if self is TemperatureUnit.CELSIUS else "F"

    @classmethod
    def parse(cls, unit_string: str | None) -> "TemperatureUnit":
        """Parse a unit name; missing or blank means Celsius.

        Example:
            >>> TemperatureUnit.parse("F")
            <TemperatureUnit.FAHRENHEIT: 'fahrenheit'>
            >>> TemperatureUnit.parse(None)
            <TemperatureUnit.CELSIUS: 'celsius'>
        """
        normalized = (unit_string or "").strip().lower()
        if normalized in ("", "celsius", "c"):
            return cls.CELSIUS
        if normalized in ("fahrenheit", "f"):
            return cls.FAHRENHEIT
        raise InvalidValueError(
            "INVALID_UNIT",
            f"Invalid temperature unit: '{unit_string}'. Supported: celsius, fahrenheit",
        )


class Temperature(BaseModel):
    """Temperature value with unit.

    Values below absolute zero are rejected. Comparisons always happen in
    Celsius so mixed units compare correctly.

    Example:
        >>> Temperature.fahrenheit(77.0).is_above(Temperature.celsius(20.0))
        True
        >>> Temperature.celsius(100.0).to_fahrenheit()
        212.0
    """

    model_config = ConfigDict(frozen=True)

    value: float
    unit: TemperatureUnit = TemperatureUnit.CELSIUS

    @model_validator(mode="after")
    def check_absolute_zero(self) -> "Temperature":
        if not math.isfinite(self.value):
            raise ValueError(f"Temperature must be a finite number, got: {self.value}")
        if self.to_celsius() < ABSOLUTE_ZERO_CELSIUS - _ABSOLUTE_ZERO_TOLERANCE:
            raise ValueError(
                f"Temperature cannot be below absolute zero (-273.15°C), got: {self.format()}"
            )
        return self

    @classmethod
    def of(
        cls,
        value: float,
        unit: TemperatureUnit,
        ceiling_celsius: float | None = None,
    ) -> "Temperature":
        """Create a temperature, optionally enforcing a Celsius-equivalent ceiling.

        Raises:
            InvalidValueError: Below absolute zero, not finite, or above the ceiling
        """
        if not math.isfinite(value):
            raise InvalidValueError("INVALID_NUMBER", f"Temperature must be a finite number, got: {value}")

        try:
            temperature = cls(value=value, unit=unit)
        except PydanticValidationError as e:
            raise InvalidValueError(
                "BELOW_ABSOLUTE_ZERO",
                f"Temperature cannot be below absolute zero (-273.15°C), got: {value}°{unit.symbol}",
            ) from e

        if ceiling_celsius is not None and temperature.to_celsius() > ceiling_celsius:
            raise InvalidValueError(
                "ABOVE_CEILING",
                f"Temperature seems unreasonably high (>{ceiling_celsius}°C), got: {temperature.format()}",
            )
        return temperature

    @classmethod
    def celsius(cls, value: float) -> "Temperature":
        return cls.of(value, TemperatureUnit.CELSIUS)

    @classmethod
    def fahrenheit(cls, value: float) -> "Temperature":
        return cls.of(value, TemperatureUnit.FAHRENHEIT)

    @classmethod
    def parse(
        cls,
        temperature_string: str,
        unit: TemperatureUnit,
        ceiling_celsius: float | None = None,
    ) -> "Temperature":
        """Parse a numeric temperature string in the given unit.

        Example:
            >>> Temperature.parse("20", TemperatureUnit.CELSIUS).value
            20.0
        """
        try:
            value = float(temperature_string.strip())
        except ValueError:
            raise InvalidValueError(
                "INVALID_NUMBER", f"Invalid temperature value: '{temperature_string}'"
            ) from None
        return cls.of(value, unit, ceiling_celsius)

    def to_celsius(self) -> float:
        if self.unit is TemperatureUnit.CELSIUS:
            return self.value
        return (self.value - 32.0) * 5.0 / 9.0

    def to_fahrenheit(self) -> float:
        if self.unit is TemperatureUnit.FAHRENHEIT:
            return self.value
        return self.value * 9.0 / 5.0 + 32.0

    def to_unit(self, target: TemperatureUnit) -> float:
        if target is TemperatureUnit.CELSIUS:
            return self.to_celsius()
        return self.to_fahrenheit()

    def is_above(self, threshold: "Temperature") -> bool:
        """Strict comparison performed in Celsius."""
        return self.to_celsius() > threshold.to_celsius()

    def format(self) -> str:
        return f"{self.value}°{self.unit.symbol}"
