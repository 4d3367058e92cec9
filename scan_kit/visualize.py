from __future__ import annotations

import colorsys
from typing import Iterable, Optional, Tuple

import numpy as np

from .types import Detection

Color = Tuple[int, int, int]

# Golden-ratio hue steps keep neighbouring class ids visually apart.
_HUE_STEP = 0.618033988749895


def color_for(det: Detection) -> Color:
    """BGR color keyed on the class id, or on the label for single-score models."""
    key = det.class_id if det.class_id is not None else sum(ord(ch) for ch in det.label)
    r, g, b = colorsys.hsv_to_rgb((key * _HUE_STEP) % 1.0, 0.75, 1.0)
    return int(b * 255), int(g * 255), int(r * 255)


def _pixel_rect(det: Detection, width: int, height: int) -> Tuple[int, int, int, int]:
    x1, y1, x2, y2 = det.to_pixels(width, height)
    xs = np.clip(np.rint([x1, x2]), 0, width - 1).astype(int)
    ys = np.clip(np.rint([y1, y2]), 0, height - 1).astype(int)
    return int(xs[0]), int(ys[0]), int(xs[1]), int(ys[1])


def _draw_label(cv2, canvas: np.ndarray, text: str, anchor: Tuple[int, int], color: Color, font_scale: float, thickness: int) -> None:
    h, w = canvas.shape[:2]
    font = cv2.FONT_HERSHEY_SIMPLEX
    (tw, th), baseline = cv2.getTextSize(text, font, font_scale, thickness)
    x, y = anchor
    # Above the box, or just inside it at the top edge of the frame.
    top = y - th - baseline if y - th - baseline >= 0 else y
    bottom = min(top + th + baseline, h - 1)
    cv2.rectangle(canvas, (x, top), (min(x + tw, w - 1), bottom), color, thickness=-1)
    cv2.putText(canvas, text, (x, min(top + th, h - 1)), font, font_scale, (255, 255, 255), thickness, cv2.LINE_AA)


def draw_detections(
    image_bgr: np.ndarray,
    detections: Iterable[Detection],
    *,
    show_score: bool = True,
    box_thickness: int = 2,
    font_scale: float = 0.5,
    font_thickness: int = 1,
    color: Optional[Color] = None,
) -> np.ndarray:
    """
    Return a copy of a BGR image with normalized detections drawn on it.

    Args:
        image_bgr: (H, W, 3) image the detections refer to
        detections: boxes normalized to that image
        color: one BGR color for every box; per-class colors when None
    """

    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for draw_detections(). Install with `pip install opencv-python`.") from e

    if not isinstance(image_bgr, np.ndarray) or image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
        raise ValueError(f"Expected a BGR image of shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

    canvas = image_bgr.copy()
    h, w = canvas.shape[:2]
    for det in detections:
        x1, y1, x2, y2 = _pixel_rect(det, w, h)
        det_color = color or color_for(det)
        cv2.rectangle(canvas, (x1, y1), (x2, y2), det_color, thickness=box_thickness)
        text = f"{det.label} {det.confidence:.2f}" if show_score else det.label
        _draw_label(cv2, canvas, text, (x1, y1), det_color, font_scale, font_thickness)
    return canvas
