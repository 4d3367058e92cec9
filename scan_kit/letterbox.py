from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Tuple

import numpy as np

from .decoder import plausible_box
from .errors import ImageConversionFailure
from .types import Box, Detection


@dataclass(frozen=True)
class LetterboxConfig:
    # None uses the input size the model declares.
    new_shape: Optional[Tuple[int, int]] = None
    # Empty margins; the model sees black padding.
    color: Tuple[int, int, int] = (0, 0, 0)
    scaleup: bool = True


@dataclass(frozen=True)
class LetterboxResult:
    image: np.ndarray
    orig_size: Tuple[int, int]
    ratio: Tuple[float, float]
    pad: Tuple[float, float]

    @property
    def size(self) -> Tuple[int, int]:
        h, w = self.image.shape[:2]
        return w, h


def _cv2():
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for letterbox(). Install with `pip install opencv-python`.") from e
    return cv2


def as_bgr(image: Optional[np.ndarray]) -> np.ndarray:
    """
    Coerce an image to a uint8 BGR (H, W, 3) array.

    Accepts BGR, grayscale (H, W) / (H, W, 1) and BGRA input; 16-bit
    images are scaled down to 8 bits. Raises
    ImageConversionFailure for anything else.
    """

    if image is None or not hasattr(image, "shape"):
        raise ImageConversionFailure(f"Expected a NumPy image, got {type(image).__name__}")
    if image.size == 0:
        raise ImageConversionFailure("Image is empty")
    cv2 = _cv2()

    img = image
    if img.dtype == np.uint16:
        img = np.rint(img / 257.0).astype(np.uint8)
    if img.dtype != np.uint8:
        if np.issubdtype(img.dtype, np.floating) and float(np.nanmax(img)) <= 1.0:
            img = img * 255.0
        img = np.clip(np.nan_to_num(img), 0, 255).astype(np.uint8)

    if img.ndim == 2 or (img.ndim == 3 and img.shape[2] == 1):
        return cv2.cvtColor(img.reshape(img.shape[:2]), cv2.COLOR_GRAY2BGR)
    if img.ndim == 3 and img.shape[2] == 4:
        return cv2.cvtColor(img, cv2.COLOR_BGRA2BGR)
    if img.ndim == 3 and img.shape[2] == 3:
        return img
    raise ImageConversionFailure(f"Expected image shape (H, W, 3), got {image.shape}")


def letterbox(
    image: np.ndarray,
    new_shape: Tuple[int, int] = (640, 640),
    color: Tuple[int, int, int] = (0, 0, 0),
    scale_fill: bool = False,
    scaleup: bool = True,
) -> LetterboxResult:
    """
    Resize and pad an image into `new_shape` (width, height).

    With `scale_fill` the image is stretched to the target size instead
    (no padding, independent x/y ratios).

    Returns a LetterboxResult with:
        ratio: (w_ratio, h_ratio)
        pad: (dw, dh) padding applied to width/height (left/top only; right/bottom equal)
    """
    cv2 = _cv2()

    h, w = image.shape[:2]
    if isinstance(new_shape, int):
        new_shape = (new_shape, new_shape)
    new_w, new_h = new_shape

    # Scale ratio (new / old)
    r = min(new_w / w, new_h / h)
    if not scaleup:  # only scale down
        r = min(r, 1.0)

    ratio = (r, r)
    resized_w, resized_h = int(round(w * r)), int(round(h * r))
    dw, dh = float(new_w - resized_w), float(new_h - resized_h)

    if scale_fill:  # stretch to fill
        resized_w, resized_h = new_w, new_h
        dw, dh = 0.0, 0.0
        ratio = (new_w / w, new_h / h)

    dw /= 2
    dh /= 2

    if (w, h) != (resized_w, resized_h):
        image = cv2.resize(image, (resized_w, resized_h), interpolation=cv2.INTER_LINEAR)

    top, bottom = int(round(dh - 0.1)), int(round(dh + 0.1))
    left, right = int(round(dw - 0.1)), int(round(dw + 0.1))
    padded = cv2.copyMakeBorder(image, top, bottom, left, right, cv2.BORDER_CONSTANT, value=color)

    return LetterboxResult(image=padded, orig_size=(w, h), ratio=ratio, pad=(dw, dh))


def unletterbox_box(box: Box, lb: LetterboxResult) -> Box:
    """
    Map a box normalized to the letterboxed canvas back to a box normalized to
    the original image. The result is not clamped.
    """

    canvas_w, canvas_h = lb.size
    orig_w, orig_h = lb.orig_size
    dw, dh = lb.pad
    rw, rh = lb.ratio

    x1 = (box.x * canvas_w - dw) / rw
    y1 = (box.y * canvas_h - dh) / rh
    x2 = ((box.x + box.width) * canvas_w - dw) / rw
    y2 = ((box.y + box.height) * canvas_h - dh) / rh
    return Box(x1 / orig_w, y1 / orig_h, (x2 - x1) / orig_w, (y2 - y1) / orig_h)


def unletterbox_detection(det: Detection, lb: LetterboxResult, min_size: float = 0.005) -> Optional[Detection]:
    """
    Move a detection from canvas coordinates to original-image coordinates.

    The mapped box is cut to the image; None if what remains fails the size check.
    """

    x1, y1, x2, y2 = unletterbox_box(det.box, lb).as_xyxy()
    x1, x2 = max(0.0, min(1.0, x1)), max(0.0, min(1.0, x2))
    y1, y2 = max(0.0, min(1.0, y1)), max(0.0, min(1.0, y2))
    box = plausible_box(Box(x1, y1, x2 - x1, y2 - y1), min_size)
    if box is None:
        return None
    return replace(det, x=box.x, y=box.y, width=box.width, height=box.height)
