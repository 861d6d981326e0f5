"""
Physical lengths and locations.

Machine coordinates, camera calibration and stage parameters that have a
physical meaning are carried as Length/Location values so they can be
converted between units without losing track of what they measure.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Union


class LengthUnit(Enum):
    """Supported length units, valued by their size in millimeters."""
    MILLIMETERS = "mm"
    CENTIMETERS = "cm"
    METERS = "m"
    INCHES = "in"
    MILS = "mil"
    MICRONS = "um"

    @property
    def millimeters(self) -> float:
        return _MM_PER_UNIT[self]

    @classmethod
    def parse(cls, text: str) -> "LengthUnit":
        """Parse a unit abbreviation ("mm", "in", ...), case-insensitive."""
        key = text.strip().lower()
        for unit in cls:
            if unit.value == key:
                return unit
        aliases = {"millimeter": cls.MILLIMETERS, "millimeters": cls.MILLIMETERS,
                   "inch": cls.INCHES, "inches": cls.INCHES, '"': cls.INCHES,
                   "µm": cls.MICRONS, "micron": cls.MICRONS, "microns": cls.MICRONS}
        if key in aliases:
            return aliases[key]
        raise ValueError(f"Unknown length unit: {text!r}")


_MM_PER_UNIT = {
    LengthUnit.MILLIMETERS: 1.0,
    LengthUnit.CENTIMETERS: 10.0,
    LengthUnit.METERS: 1000.0,
    LengthUnit.INCHES: 25.4,
    LengthUnit.MILS: 0.0254,
    LengthUnit.MICRONS: 0.001,
}

_LENGTH_PATTERN = re.compile(r"^\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)\s*([a-zA-Zµ\"]+)\s*$")


@dataclass(frozen=True)
class Length:
    """A scalar length with units."""
    value: float
    units: LengthUnit = LengthUnit.MILLIMETERS

    def convert_to(self, units: LengthUnit) -> "Length":
        if units is self.units:
            return self
        return Length(self.value * self.units.millimeters / units.millimeters, units)

    def to_millimeters(self) -> float:
        return self.convert_to(LengthUnit.MILLIMETERS).value

    @classmethod
    def parse(cls, text: str) -> "Length":
        """
        Parse a length such as "0.5mm", "20 mil" or "1.2in".

        Raises:
            ValueError: If the text is not a number followed by a known unit.
        """
        match = _LENGTH_PATTERN.match(text)
        if not match:
            raise ValueError(f"Not a length: {text!r}")
        return cls(float(match.group(1)), LengthUnit.parse(match.group(2)))

    def __add__(self, other: "Length") -> "Length":
        return Length(self.value + other.convert_to(self.units).value, self.units)

    def __sub__(self, other: "Length") -> "Length":
        return Length(self.value - other.convert_to(self.units).value, self.units)

    def __str__(self) -> str:
        return f"{self.value:g}{self.units.value}"


@dataclass(frozen=True)
class Location:
    """
    A point in machine space.

    Attributes:
        x, y, z: Coordinates in `units`.
        rotation: Rotation in degrees (unitless).
        units: Units of x, y and z.
    """
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0
    rotation: float = 0.0
    units: LengthUnit = LengthUnit.MILLIMETERS

    def convert_to(self, units: LengthUnit) -> "Location":
        if units is self.units:
            return self
        factor = self.units.millimeters / units.millimeters
        return Location(self.x * factor, self.y * factor, self.z * factor, self.rotation, units)

    def add(self, other: "Location") -> "Location":
        o = other.convert_to(self.units)
        return Location(self.x + o.x, self.y + o.y, self.z + o.z, self.rotation + o.rotation, self.units)

    def subtract(self, other: "Location") -> "Location":
        o = other.convert_to(self.units)
        return Location(self.x - o.x, self.y - o.y, self.z - o.z, self.rotation - o.rotation, self.units)

    def length_x(self) -> Length:
        return Length(self.x, self.units)

    def length_y(self) -> Length:
        return Length(self.y, self.units)

    def length_z(self) -> Length:
        return Length(self.z, self.units)

    def derive(self, **changes: Union[float, LengthUnit]) -> "Location":
        """Copy with some coordinates replaced."""
        return replace(self, **changes)

    def linear_distance_to(self, other: "Location") -> float:
        o = other.convert_to(self.units)
        return math.hypot(self.x - o.x, self.y - o.y)

    @classmethod
    def from_dict(cls, d: dict) -> "Location":
        return cls(
            x=float(d.get("x", 0.0)),
            y=float(d.get("y", 0.0)),
            z=float(d.get("z", 0.0)),
            rotation=float(d.get("rotation", 0.0)),
            units=LengthUnit.parse(d.get("units", "mm")),
        )

    def to_dict(self) -> dict:
        return {
            "x": self.x,
            "y": self.y,
            "z": self.z,
            "rotation": self.rotation,
            "units": self.units.value,
        }
