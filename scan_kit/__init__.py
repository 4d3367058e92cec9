"""
On-device style object detection decoding.

Loads a CoreML (or ONNX) detection model, runs it on one image and decodes the
raw named outputs into normalized, labelled boxes. Decoding itself only needs
NumPy; OpenCV is used for letterboxing and drawing.
"""

from .config import DetectorConfig, load_detector_config
from .conventions import CenterForm, CoordinateConvention, CornerForm, register_convention
from .decoder import BoxDecoder, DecoderConfig
from .discovery import discover_outputs
from .letterbox import LetterboxConfig, letterbox
from .locator import LocatorConfig, ModelLocator
from .metadata import load_class_names, parse_names_string, resolve_label
from .service import DetectorService, open_detector
from .tensor import ElementType, RawOutputTensor
from .types import Box, Detection, grouped_counts
from .visualize import draw_detections

__all__ = [
    "Box",
    "BoxDecoder",
    "CenterForm",
    "CoordinateConvention",
    "CornerForm",
    "DecoderConfig",
    "Detection",
    "DetectorConfig",
    "DetectorService",
    "ElementType",
    "LetterboxConfig",
    "LocatorConfig",
    "ModelLocator",
    "RawOutputTensor",
    "discover_outputs",
    "draw_detections",
    "grouped_counts",
    "letterbox",
    "load_class_names",
    "load_detector_config",
    "open_detector",
    "parse_names_string",
    "register_convention",
    "resolve_label",
]
