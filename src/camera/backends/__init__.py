"""
Camera backends.

- `OpenCVCamera`: USB index, RTSP URL or video file via cv2.VideoCapture
- `ImageFileCamera`: a fixed still image (offline runs, simulation)
"""

from .opencv import OpenCVCamera
from .image_file import ImageFileCamera

__all__ = ["OpenCVCamera", "ImageFileCamera"]
