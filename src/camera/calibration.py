"""
Units-per-pixel calibration and per-tool offsets.

A camera always has a flat units-per-pixel value: X/Y physical units per
pixel, measured with the object in focus at a known height (the z of the
Location). Optionally it also has a curve that gives units per pixel as a
function of the imaged object's height, so that parts sitting above or
below the calibration plane are measured correctly.

Calibration objects are immutable. Reconfiguring a camera swaps the whole
object, so a concurrent reader sees either the old or the new calibration
and never a mix of both.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from models.config import CalibrationConfig
from models.geometry import Length, LengthUnit, Location

ZValue = Union[Length, float, int, None]


class UnitsPerPixelCurve(ABC):
    """Units per pixel as a function of Z, in the calibration's units."""

    @abstractmethod
    def evaluate(self, z: float) -> Tuple[float, float]:
        """Return (x, y) units per pixel at height z."""

    @abstractmethod
    def is_configured(self) -> bool:
        """True when the curve has enough data to be meaningful."""


@dataclass(frozen=True)
class LinearZCurve(UnitsPerPixelCurve):
    """
    Linear interpolation (and extrapolation) between two measurements
    taken at different heights.
    """
    primary: Location
    secondary: Location

    def is_configured(self) -> bool:
        secondary = self.secondary.convert_to(self.primary.units)
        return (
            secondary.z != self.primary.z
            and secondary.x != 0.0
            and secondary.y != 0.0
        )

    def evaluate(self, z: float) -> Tuple[float, float]:
        p = self.primary
        s = self.secondary.convert_to(p.units)
        t = (z - p.z) / (s.z - p.z)
        return (p.x + (s.x - p.x) * t, p.y + (s.y - p.y) * t)


@dataclass(frozen=True)
class PolynomialZCurve(UnitsPerPixelCurve):
    """Least-squares polynomial fit over (z, x, y) samples."""
    coefficients_x: Tuple[float, ...]
    coefficients_y: Tuple[float, ...]

    @classmethod
    def fit(cls, samples: Sequence[Tuple[float, float, float]], degree: int = 1) -> "PolynomialZCurve":
        """
        Fit x and y units per pixel against z.

        Raises:
            ValueError: If there are not more distinct heights than the degree.
        """
        data = np.asarray(samples, dtype=float)
        if data.ndim != 2 or data.shape[1] != 3:
            raise ValueError("samples must be (z, x, y) triples")
        if len(np.unique(data[:, 0])) <= degree:
            raise ValueError(
                f"need more than {degree} distinct heights for a degree {degree} fit, "
                f"got {len(np.unique(data[:, 0]))}"
            )
        cx = np.polyfit(data[:, 0], data[:, 1], degree)
        cy = np.polyfit(data[:, 0], data[:, 2], degree)
        return cls(tuple(float(c) for c in cx), tuple(float(c) for c in cy))

    def is_configured(self) -> bool:
        return len(self.coefficients_x) > 1

    def evaluate(self, z: float) -> Tuple[float, float]:
        return (
            float(np.polyval(self.coefficients_x, z)),
            float(np.polyval(self.coefficients_y, z)),
        )


@dataclass(frozen=True)
class CameraCalibration:
    """
    Immutable snapshot of a camera's units-per-pixel calibration.

    Attributes:
        flat: Flat units per pixel; z is the height it was measured at.
        curve: Optional Z-dependent model; None or unconfigured means flat only.
    """
    flat: Location = field(default_factory=lambda: Location(0.0, 0.0, 0.0))
    curve: Optional[UnitsPerPixelCurve] = None

    @property
    def units(self) -> LengthUnit:
        return self.flat.units

    def is_z_calibrated(self) -> bool:
        return self.curve is not None and self.curve.is_configured()

    def units_per_pixel(self, z: ZValue = None, default_z: ZValue = None) -> Location:
        """
        Units per pixel for an object imaged at height z.

        With no configured curve the flat value is returned for every z.
        A None z uses default_z; if that is also None, the flat value's
        measurement height is used.
        """
        if not self.is_z_calibrated():
            return self.flat
        height = self._to_units(z)
        if height is None:
            height = self._to_units(default_z)
        if height is None:
            height = self.flat.z
        x, y = self.curve.evaluate(height)
        return Location(x, y, height, 0.0, self.units)

    def _to_units(self, z: ZValue) -> Optional[float]:
        if z is None:
            return None
        if isinstance(z, Length):
            return z.convert_to(self.units).value
        return float(z)

    def with_flat(self, flat: Location) -> "CameraCalibration":
        curve = self.curve
        if isinstance(curve, LinearZCurve):
            curve = LinearZCurve(flat, curve.secondary)
        return CameraCalibration(flat, curve)

    @classmethod
    def from_config(cls, cfg: CalibrationConfig) -> "CameraCalibration":
        """Build from config; an unusable Z model degrades to flat with a warning."""
        flat = cfg.units_per_pixel
        curve: Optional[UnitsPerPixelCurve] = None
        model = (cfg.z_model or "none").lower()
        if model == "linear":
            if cfg.secondary_units_per_pixel is None:
                logging.warning("Linear Z calibration without secondary_units_per_pixel, using flat value")
            else:
                curve = LinearZCurve(flat, cfg.secondary_units_per_pixel)
        elif model == "polynomial":
            try:
                curve = PolynomialZCurve.fit(cfg.samples, cfg.degree)
            except ValueError as e:
                logging.warning(f"Polynomial Z calibration unusable ({e}), using flat value")
        elif model != "none":
            logging.warning(f"Unknown Z calibration model {cfg.z_model!r}, using flat value")
        return cls(flat, curve)


def tool_key(tool: Any) -> Optional[str]:
    """Tools are keyed by id: a string, or any object with an `id` or `name`."""
    if tool is None:
        return None
    if isinstance(tool, str):
        return tool
    for attr in ("id", "name"):
        value = getattr(tool, attr, None)
        if value is not None:
            return str(value)
    return str(tool)


class ToolOffsets:
    """
    Immutable per-tool correction vectors.

    The offset of `None` (no tool) is always the zero Location, and so is the
    offset of any tool without a configured entry.
    """

    def __init__(self, offsets: Optional[Mapping[str, Location]] = None):
        self._offsets: Mapping[str, Location] = MappingProxyType(dict(offsets or {}))

    def offset_for(self, tool: Any) -> Location:
        key = tool_key(tool)
        if key is None:
            return Location()
        return self._offsets.get(key, Location())

    def with_offset(self, tool: Any, offset: Optional[Location]) -> "ToolOffsets":
        """Copy with one tool's offset set (or removed when offset is None)."""
        key = tool_key(tool)
        if key is None:
            raise ValueError("Cannot set an offset for tool None")
        offsets: Dict[str, Location] = dict(self._offsets)
        if offset is None:
            offsets.pop(key, None)
        else:
            offsets[key] = offset
        return ToolOffsets(offsets)

    def as_dict(self) -> Dict[str, Location]:
        return dict(self._offsets)

    def __len__(self) -> int:
        return len(self._offsets)
