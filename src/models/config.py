"""
Typed configuration models matching the YAML config structure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from .geometry import Location


@dataclass
class TransformConfig:
    """
    Post-capture image transform.

    Applied in this order: undistort, rotate, flip, crop, channel swap.
    """
    rotate: int = 0
    flip_horizontal: bool = False
    flip_vertical: bool = False
    swap_rb: bool = False
    crop: Optional[Tuple[int, int, int, int]] = None  # x, y, width, height
    camera_matrix: Optional[List[List[float]]] = None
    distortion: Optional[List[float]] = None

    @property
    def is_identity(self) -> bool:
        return (
            self.rotate == 0
            and not self.flip_horizontal
            and not self.flip_vertical
            and not self.swap_rb
            and self.crop is None
            and self.camera_matrix is None
        )

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "TransformConfig":
        crop = d.get("crop")
        return cls(
            rotate=int(d.get("rotate", 0) or 0),
            flip_horizontal=d.get("flip_horizontal", False),
            flip_vertical=d.get("flip_vertical", False),
            swap_rb=d.get("swap_rb", False),
            crop=tuple(crop) if crop else None,
            camera_matrix=d.get("camera_matrix"),
            distortion=d.get("distortion"),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "rotate": self.rotate,
            "flip_horizontal": self.flip_horizontal,
            "flip_vertical": self.flip_vertical,
            "swap_rb": self.swap_rb,
        }
        if self.crop is not None:
            d["crop"] = list(self.crop)
        if self.camera_matrix is not None:
            d["camera_matrix"] = self.camera_matrix
            d["distortion"] = self.distortion
        return d


@dataclass
class CalibrationConfig:
    """
    Units-per-pixel calibration.

    Attributes:
        units_per_pixel: Flat X/Y units per pixel; its z is the height it was measured at.
        z_model: "none", "linear" (two measurements) or "polynomial" (fit over samples).
        secondary_units_per_pixel: Second measurement at another z, for the linear model.
        samples: (z, x, y) measurements for the polynomial model.
        degree: Polynomial degree.
    """
    units_per_pixel: Location = field(default_factory=lambda: Location(0.0, 0.0, 0.0))
    z_model: str = "none"
    secondary_units_per_pixel: Optional[Location] = None
    samples: List[Tuple[float, float, float]] = field(default_factory=list)
    degree: int = 1

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CalibrationConfig":
        upp = d.get("units_per_pixel")
        secondary = d.get("secondary_units_per_pixel")
        return cls(
            units_per_pixel=Location.from_dict(upp) if upp else Location(0.0, 0.0, 0.0),
            z_model=d.get("z_model", "none"),
            secondary_units_per_pixel=Location.from_dict(secondary) if secondary else None,
            samples=[tuple(s) for s in d.get("samples", [])],
            degree=int(d.get("degree", 1)),
        )

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "units_per_pixel": self.units_per_pixel.to_dict(),
            "z_model": self.z_model,
        }
        if self.secondary_units_per_pixel is not None:
            d["secondary_units_per_pixel"] = self.secondary_units_per_pixel.to_dict()
        if self.samples:
            d["samples"] = [list(s) for s in self.samples]
            d["degree"] = self.degree
        return d


@dataclass
class SettleConfig:
    """Camera settling before capture."""
    method: str = "none"  # none | fixed | motion
    time_ms: int = 0
    threshold: float = 2.0
    timeout_ms: int = 1000
    poll_ms: int = 0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SettleConfig":
        return cls(
            method=d.get("method", "none"),
            time_ms=int(d.get("time_ms", 0)),
            threshold=float(d.get("threshold", 2.0)),
            timeout_ms=int(d.get("timeout_ms", 1000)),
            poll_ms=int(d.get("poll_ms", 0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "method": self.method,
            "time_ms": self.time_ms,
            "threshold": self.threshold,
            "timeout_ms": self.timeout_ms,
            "poll_ms": self.poll_ms,
        }


@dataclass
class LightingConfig:
    """Light actuation around captures."""
    on_value: Any = True
    off_value: Any = False
    off_after_capture: bool = False

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "LightingConfig":
        return cls(
            on_value=d.get("on_value", True),
            off_value=d.get("off_value", False),
            off_after_capture=d.get("off_after_capture", False),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "on_value": self.on_value,
            "off_value": self.off_value,
            "off_after_capture": self.off_after_capture,
        }


@dataclass
class CameraConfig:
    """Camera configuration."""
    name: str = "camera"
    backend: str = "opencv"
    device_id: Union[int, str] = 0
    image_path: Optional[str] = None
    resolution: List[int] = field(default_factory=lambda: [1280, 720])
    fps: int = 30
    rtsp_transport: str = "tcp"
    max_retries: int = 3
    looking: str = "down"
    location: Location = field(default_factory=Location)
    default_z: float = 0.0
    safe_z: float = 0.0
    tool_offsets: Dict[str, Location] = field(default_factory=dict)
    transform: TransformConfig = field(default_factory=TransformConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    settle: SettleConfig = field(default_factory=SettleConfig)
    lighting: LightingConfig = field(default_factory=LightingConfig)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "CameraConfig":
        """Adapter: Create from config dictionary."""
        return cls(
            name=d.get("name", "camera"),
            backend=d.get("backend", "opencv"),
            device_id=d.get("device_id", 0),
            image_path=d.get("image_path"),
            resolution=d.get("resolution", [1280, 720]),
            fps=d.get("fps", 30),
            rtsp_transport=d.get("rtsp_transport", "tcp"),
            max_retries=d.get("max_retries", 3),
            looking=d.get("looking", "down"),
            location=Location.from_dict(d.get("location") or {}),
            default_z=float(d.get("default_z", 0.0)),
            safe_z=float(d.get("safe_z", 0.0)),
            tool_offsets={
                tool: Location.from_dict(offset)
                for tool, offset in (d.get("tool_offsets") or {}).items()
            },
            transform=TransformConfig.from_dict(d.get("transform") or {}),
            calibration=CalibrationConfig.from_dict(d.get("calibration") or {}),
            settle=SettleConfig.from_dict(d.get("settle") or {}),
            lighting=LightingConfig.from_dict(d.get("lighting") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "name": self.name,
            "backend": self.backend,
            "device_id": self.device_id,
            "resolution": self.resolution,
            "fps": self.fps,
            "rtsp_transport": self.rtsp_transport,
            "max_retries": self.max_retries,
            "looking": self.looking,
            "location": self.location.to_dict(),
            "default_z": self.default_z,
            "safe_z": self.safe_z,
            "tool_offsets": {tool: loc.to_dict() for tool, loc in self.tool_offsets.items()},
            "transform": self.transform.to_dict(),
            "calibration": self.calibration.to_dict(),
            "settle": self.settle.to_dict(),
            "lighting": self.lighting.to_dict(),
        }
        if self.image_path is not None:
            d["image_path"] = self.image_path
        return d


@dataclass
class Config:
    """
    Complete application configuration.

    This is a typed representation of the YAML config structure.
    Stage lists are kept as raw dicts; they become StageDefinitions
    when a pipeline is built.
    """
    cameras: List[CameraConfig] = field(default_factory=list)
    pipelines: Dict[str, List[Dict[str, Any]]] = field(default_factory=dict)
    engine: Dict[str, Any] = field(default_factory=dict)
    log_path: str = "logs/pnp_vision.log"
    log_level: str = "INFO"

    def get_camera(self, name: Optional[str] = None) -> Optional[CameraConfig]:
        """Camera by name, or the first camera if name is None."""
        if name is None:
            return self.cameras[0] if self.cameras else None
        for camera in self.cameras:
            if camera.name == name:
                return camera
        return None

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Config":
        """Adapter: Create Config from raw dictionary (e.g., from load_config)."""
        return cls(
            cameras=[CameraConfig.from_dict(c) for c in d.get("cameras", [])],
            pipelines=dict(d.get("pipelines") or {}),
            engine=dict(d.get("engine") or {}),
            log_path=d.get("log_path", "logs/pnp_vision.log"),
            log_level=d.get("log_level", "INFO"),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back to dictionary."""
        return {
            "cameras": [c.to_dict() for c in self.cameras],
            "pipelines": self.pipelines,
            "engine": self.engine,
            "log_path": self.log_path,
            "log_level": self.log_level,
        }
