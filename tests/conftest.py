"""
Pytest configuration and shared fixtures.
"""

import os
import sys

import cv2
import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from camera.backends.image_file import ImageFileCamera  # noqa: E402
from models.config import CameraConfig  # noqa: E402


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory with default.yaml."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    default_yaml = config_dir / "default.yaml"
    default_yaml.write_text("""
cameras:
  - name: "top"
    backend: "opencv"
    device_id: 0
    resolution: [640, 480]
    fps: 30
    calibration:
      units_per_pixel: {x: 0.05, y: 0.05, z: 0.0, units: "mm"}

engine:
  max_iterations: 50

pipelines:
  blur:
    - {type: ImageCapture, name: capture}
    - {type: BlurGaussian, name: blur, kernel_size: 5}

log_path: "logs/test.log"
log_level: "INFO"
""")

    return config_dir


@pytest.fixture
def valid_config():
    """Return a valid configuration dictionary."""
    return {
        "cameras": [
            {
                "name": "top",
                "backend": "opencv",
                "device_id": 0,
                "resolution": [1280, 720],
                "fps": 30,
                "transform": {"rotate": 0},
                "calibration": {
                    "units_per_pixel": {"x": 0.1, "y": 0.1, "z": 0.0, "units": "mm"},
                    "z_model": "none",
                },
                "settle": {"method": "fixed", "time_ms": 10},
            },
            {
                "name": "bottom",
                "backend": "image_file",
                "image_path": "data/bottom.png",
                "looking": "up",
            },
        ],
        "pipelines": {
            "fiducial": [
                {"type": "ImageCapture", "name": "capture"},
                {"type": "BlurGaussian", "name": "blur", "kernel_size": 5},
            ],
        },
        "engine": {"max_iterations": 20},
        "log_path": "logs/test.log",
        "log_level": "INFO",
    }


@pytest.fixture
def gradient_image():
    """100x200 grayscale horizontal gradient."""
    row = np.linspace(0, 255, 200, dtype=np.uint8)
    return np.tile(row, (100, 1))


@pytest.fixture
def noisy_image():
    """Deterministic BGR noise, 120x160."""
    rng = np.random.default_rng(42)
    return rng.integers(0, 256, size=(120, 160, 3), dtype=np.uint8)


@pytest.fixture
def circles_image():
    """BGR 200x200 black image with two filled white circles (diameter 40)."""
    image = np.zeros((200, 200, 3), dtype=np.uint8)
    cv2.circle(image, (50, 50), 20, (255, 255, 255), -1)
    cv2.circle(image, (140, 140), 20, (255, 255, 255), -1)
    return image


@pytest.fixture
def rects_image():
    """Binary 100x100 image: a 40x20 rectangle and a 4x4 speck."""
    image = np.zeros((100, 100), dtype=np.uint8)
    image[10:30, 10:50] = 255
    image[70:74, 70:74] = 255
    return image


@pytest.fixture
def make_camera():
    """Factory for an opened in-memory still-image camera."""
    cameras = []

    def _make(image=None, light_actuator=None, **config):
        config.setdefault("name", "test-cam")
        config.setdefault("backend", "image_file")
        cfg = CameraConfig.from_dict(config)
        if image is None:
            image = np.zeros((48, 64, 3), dtype=np.uint8)
        camera = ImageFileCamera(cfg, light_actuator, image=image)
        camera.open()
        cameras.append(camera)
        return camera

    yield _make

    for camera in cameras:
        camera.stop_all_continuous_capture()
        camera.close()
