"""
Pipeline stages.

Importing this package registers the built-in stages with STAGE_REGISTRY:
- image: ImageCapture, ImageRecall, ConvertColor
- filters: BlurGaussian, BlurMedian, Threshold
- features: DetectCirclesHough, FindContours, MinAreaRect
- draw: DrawCircles
- control: SkipIfEmpty, RepeatFrom
"""

from .base import Overridable, Signal, Stage, StageOutput
from .registry import STAGE_REGISTRY, StageRegistry, register_stage
from .image import ConvertColor, ImageCapture, ImageRecall
from .filters import BlurGaussian, BlurMedian, Threshold, odd_kernel_size
from .features import DetectCirclesHough, FindContours, MinAreaRect
from .draw import DrawCircles
from .control import RepeatFrom, SkipIfEmpty

__all__ = [
    "Overridable",
    "Signal",
    "Stage",
    "StageOutput",
    "STAGE_REGISTRY",
    "StageRegistry",
    "register_stage",
    "ImageCapture",
    "ImageRecall",
    "ConvertColor",
    "BlurGaussian",
    "BlurMedian",
    "Threshold",
    "odd_kernel_size",
    "DetectCirclesHough",
    "FindContours",
    "MinAreaRect",
    "DrawCircles",
    "SkipIfEmpty",
    "RepeatFrom",
]
