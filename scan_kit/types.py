from __future__ import annotations

import uuid
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class Box:
    """
    Axis-aligned box in normalized image coordinates (origin top-left).
    """

    x: float
    y: float
    width: float
    height: float

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.x + self.width, self.y + self.height


@dataclass(frozen=True)
class Detection:
    """
    A single detected object.

    Coordinates are normalized to [0, 1] relative to the source image, with the
    origin at the top-left corner.
    """

    label: str
    x: float
    y: float
    width: float
    height: float
    confidence: float
    class_id: Optional[int] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @classmethod
    def from_box(cls, box: Box, label: str, confidence: float, class_id: Optional[int] = None) -> "Detection":
        return cls(
            label=label,
            x=float(box.x),
            y=float(box.y),
            width=float(box.width),
            height=float(box.height),
            confidence=float(confidence),
            class_id=class_id,
        )

    @property
    def box(self) -> Box:
        return Box(self.x, self.y, self.width, self.height)

    def as_xywh(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.width, self.height

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return self.box.as_xyxy()

    def to_pixels(self, image_width: int, image_height: int) -> Tuple[float, float, float, float]:
        """xyxy in pixel units of an image of the given size."""
        x1, y1, x2, y2 = self.as_xyxy()
        return x1 * image_width, y1 * image_height, x2 * image_width, y2 * image_height

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "label": self.label,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "confidence": self.confidence,
            "class_id": self.class_id,
        }


def grouped_counts(detections: Iterable[Detection]) -> List[Tuple[str, int]]:
    """Count detections per label, sorted by label."""
    counts = Counter(det.label for det in detections)
    return sorted(counts.items(), key=lambda item: item[0])
