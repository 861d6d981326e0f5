"""
Run-scoped property overrides.

A caller of a pipeline run (a script, an auto-tuning routine, another
stage) can supersede an overridable stage parameter for that one run
without touching the stage's persisted value. Overrides are keyed by a
dotted name, "<stage property name>.<parameter>", e.g.
"BlurGaussian.kernel_size".

Override values are a small closed set of types (number, length, text,
boolean). Each overridable parameter lists the types it accepts in
priority order and the resolver coerces the override to the first one
that fits. Lengths are converted to pixels with the camera's current
units-per-pixel, so stages never deal with calibration themselves.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from numbers import Number
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Sequence, Tuple, Union

from models.geometry import Length, Location
from .errors import TypeMismatchError


class ValueType(Enum):
    NUMBER = "number"
    LENGTH = "length"
    TEXT = "text"
    BOOLEAN = "boolean"


def property_key(property_name: str, parameter: str) -> str:
    """Dotted override key for a stage parameter."""
    return f"{property_name}.{parameter}"


def split_property_key(key: str) -> Tuple[str, str]:
    """Split "<property name>.<parameter>" at the last dot."""
    name, sep, parameter = key.rpartition(".")
    if not sep or not name or not parameter:
        raise ValueError(f"Override key must look like '<property>.<parameter>', got {key!r}")
    return name, parameter


@dataclass(frozen=True)
class PropertyOverride:
    """An ephemeral value superseding a stage parameter for one run."""
    property_name: str
    value: Any
    value_type: ValueType

    @classmethod
    def of(cls, property_name: str, value: Any) -> "PropertyOverride":
        """Wrap a plain value, inferring its type. Strings like "0.5mm" become lengths."""
        if isinstance(value, PropertyOverride):
            return value
        if isinstance(value, bool):
            return cls(property_name, value, ValueType.BOOLEAN)
        if isinstance(value, Number):
            return cls(property_name, value, ValueType.NUMBER)
        if isinstance(value, Length):
            return cls(property_name, value, ValueType.LENGTH)
        if isinstance(value, str):
            text = value.strip()
            try:
                return cls(property_name, float(text), ValueType.NUMBER)
            except ValueError:
                pass
            try:
                return cls(property_name, Length.parse(text), ValueType.LENGTH)
            except ValueError:
                pass
            if text.lower() in ("true", "false"):
                return cls(property_name, text.lower() == "true", ValueType.BOOLEAN)
            return cls(property_name, value, ValueType.TEXT)
        raise TypeError(f"Unsupported override value for {property_name!r}: {value!r}")

    @classmethod
    def parse(cls, assignment: str) -> "PropertyOverride":
        """
        Parse "<property>.<parameter>=<value>", as given on the command line.

        Raises:
            ValueError: If there is no '=' or the key is not dotted.
        """
        key, sep, raw = assignment.partition("=")
        if not sep:
            raise ValueError(f"Override must look like 'name.parameter=value', got {assignment!r}")
        key = key.strip()
        split_property_key(key)
        return cls.of(key, raw.strip())


OverridesInput = Union[None, Mapping[str, Any], Iterable[PropertyOverride]]


def normalize_overrides(overrides: OverridesInput) -> Dict[str, PropertyOverride]:
    """Accept a {key: value} mapping or PropertyOverride objects; return a typed table."""
    if not overrides:
        return {}
    if isinstance(overrides, Mapping):
        return {key: PropertyOverride.of(key, value) for key, value in overrides.items()}
    return {o.property_name: o for o in overrides}


class PropertyResolver:
    """
    Resolves a parameter's effective value: the run's override if one is
    present for the property name, else the stage's own value.

    Attributes:
        units_per_pixel: Calibration context for converting lengths to pixels.
    """

    def __init__(self, units_per_pixel: Optional[Location] = None):
        self.units_per_pixel = units_per_pixel
        self._coercions: Dict[ValueType, Callable[[PropertyOverride, Any], Any]] = {
            ValueType.NUMBER: self._coerce_number,
            ValueType.LENGTH: self._coerce_length,
            ValueType.TEXT: self._coerce_text,
            ValueType.BOOLEAN: self._coerce_boolean,
        }

    def resolve(
        self,
        base_value: Any,
        overrides: Mapping[str, Any],
        property_name: Optional[str],
        expected_types: Sequence[ValueType],
    ) -> Any:
        """
        Effective value of one parameter.

        Raises:
            TypeMismatchError: An override exists but fits none of expected_types.
        """
        if not property_name:
            return base_value
        raw = overrides.get(property_name) if overrides else None
        if raw is None:
            return base_value
        override = PropertyOverride.of(property_name, raw)

        reason = ""
        for expected in expected_types:
            try:
                value = self._coercions[expected](override, base_value)
            except (TypeError, ValueError, ZeroDivisionError) as e:
                reason = str(e)
                continue
            logging.debug(f"Override {property_name}={override.value!r} -> {value!r} ({expected.value})")
            return value
        raise TypeMismatchError(property_name, override.value, expected_types, reason)

    def to_pixels(self, value: Any, property_name: str = "") -> Any:
        """
        Pixel count for a parameter that may hold a physical length. Plain
        numbers are already pixels and pass through unchanged.

        Raises:
            TypeMismatchError: A length with no usable calibration.
        """
        if not isinstance(value, Length):
            return value
        try:
            return self._length_to_pixels(value)
        except (ValueError, ZeroDivisionError) as e:
            raise TypeMismatchError(property_name, value, (ValueType.NUMBER,), str(e)) from e

    def _length_to_pixels(self, length: Length) -> float:
        upp = self.units_per_pixel
        if upp is None:
            raise ValueError("no units-per-pixel calibration to convert a length to pixels")
        scale = (abs(upp.x) + abs(upp.y)) / 2.0
        if scale == 0.0:
            raise ValueError("units-per-pixel is zero (camera not calibrated)")
        return length.convert_to(upp.units).value / scale

    @staticmethod
    def _cast_like(value: float, base_value: Any) -> Any:
        if isinstance(base_value, bool):
            raise TypeError("numeric override for a boolean parameter")
        if isinstance(base_value, int):
            return int(value)
        return float(value)

    def _coerce_number(self, override: PropertyOverride, base_value: Any) -> Any:
        if override.value_type is ValueType.NUMBER:
            return self._cast_like(float(override.value), base_value)
        if override.value_type is ValueType.TEXT:
            return self._cast_like(float(override.value), base_value)
        raise TypeError(f"{override.value_type.value} is not a number")

    def _coerce_length(self, override: PropertyOverride, base_value: Any) -> Any:
        if override.value_type is ValueType.LENGTH:
            length = override.value
        elif override.value_type is ValueType.TEXT:
            length = Length.parse(override.value)
        else:
            raise TypeError(f"{override.value_type.value} is not a length")
        if isinstance(base_value, Length):
            return length
        pixels = self._length_to_pixels(length)
        if isinstance(base_value, int) and not isinstance(base_value, bool):
            return int(round(pixels))
        return pixels

    @staticmethod
    def _coerce_text(override: PropertyOverride, base_value: Any) -> str:
        return str(override.value)

    @staticmethod
    def _coerce_boolean(override: PropertyOverride, base_value: Any) -> bool:
        if override.value_type is ValueType.BOOLEAN:
            return bool(override.value)
        if override.value_type is ValueType.TEXT and str(override.value).lower() in ("true", "false"):
            return str(override.value).lower() == "true"
        raise TypeError(f"{override.value_type.value} is not a boolean")
