from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .decoder import plausible_box
from .letterbox import LetterboxResult
from .metadata import resolve_label
from .nms import NMSConfig, nms
from .types import Box, Detection


@dataclass(frozen=True)
class YoloPostConfig:
    """
    Settings for decoding a single raw YOLO output tensor.
    """

    conf_threshold: float = 0.25
    iou_threshold: float = 0.45
    max_detections: int = 100
    # If False, skip NMS and only keep top `max_detections` by score.
    apply_nms: bool = True
    # If False, boxes only suppress boxes of the same class.
    class_agnostic_nms: bool = False
    # For (C+4, A) layouts, some exports include an objectness row: (C+5, A).
    # Set True/False to force interpretation; None treats every row as a class score.
    anchors_has_objectness: Optional[bool] = None
    min_size: float = 0.005

    def __post_init__(self) -> None:
        if not 0.0 <= self.conf_threshold <= 1.0:
            raise ValueError("conf_threshold must be within [0, 1]")
        if not 0.0 <= self.iou_threshold <= 1.0:
            raise ValueError("iou_threshold must be within [0, 1]")
        if self.max_detections <= 0:
            raise ValueError("max_detections must be > 0")


class YoloPostprocessor:
    """
    Decoder for the common single-tensor YOLO export layouts.

    Supported layouts (per image, an optional leading batch of 1 is dropped):
    - (N, 6) or (6, N): already decoded [x1, y1, x2, y2, score, class_id]
    - (N, 5 + C): [cx, cy, w, h, obj, class_scores...]
    - (C + 4, A): channels first, e.g. 84 x 8400 for yolov8/yolo11

    Box coordinates may be in model-input pixels or normalized to the input;
    values no larger than 1.5 are taken as normalized.
    """

    def __init__(self, cfg: YoloPostConfig = YoloPostConfig()):
        self.cfg = cfg

    def process(
        self,
        preds: np.ndarray,
        lb: LetterboxResult,
        class_names: Optional[Sequence[str]] = None,
        map_to_source: bool = True,
    ) -> List[Detection]:
        """
        Convert one raw output into normalized detections.

        Args:
            preds: model output for a single image
            lb: the letterbox (or stretch) used to build the model input
            class_names: optional class-name table
            map_to_source: normalize to the original image; False keeps boxes
                normalized to the model input canvas
        """

        boxes, scores, class_ids = self.decode(preds)
        if boxes.shape[0] == 0:
            return []

        keep = scores >= self.cfg.conf_threshold
        boxes, scores, class_ids = boxes[keep], scores[keep], class_ids[keep]
        if boxes.shape[0] == 0:
            return []

        if self.cfg.apply_nms:
            idx = nms(
                boxes,
                scores,
                NMSConfig(iou_threshold=self.cfg.iou_threshold, max_detections=self.cfg.max_detections),
                class_ids=None if self.cfg.class_agnostic_nms else class_ids,
            )
        else:
            idx = np.argsort(-scores, kind="stable")[: self.cfg.max_detections]
        boxes, scores, class_ids = boxes[idx], scores[idx], class_ids[idx]

        boxes = self.to_source(boxes, lb) if map_to_source else self.to_canvas(boxes, lb)

        results: List[Detection] = []
        for (x1, y1, x2, y2), score, cls_id in zip(boxes, scores, class_ids):
            box = plausible_box(Box(float(x1), float(y1), float(x2 - x1), float(y2 - y1)), self.cfg.min_size)
            if box is None:
                continue
            cls = int(cls_id)
            results.append(
                Detection.from_box(box, label=resolve_label(cls, class_names), confidence=float(score), class_id=cls)
            )
        return results

    def decode(self, preds: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Decode a raw layout into (xyxy boxes, scores, class ids).
        """

        p = np.asarray(preds, dtype=np.float64)
        if p.ndim == 3:
            if p.shape[0] != 1:
                raise ValueError(f"Batch > 1 is not supported (got shape {p.shape}). Pass one image at a time.")
            p = p[0]
        if p.ndim != 2:
            raise ValueError(f"Unsupported YOLO output shape: {p.shape}")

        rows, cols = p.shape
        if cols == 6 or (rows == 6 and cols < 6):
            if rows == 6 and cols != 6:
                p = p.T
            return p[:, 0:4].copy(), p[:, 4].copy(), p[:, 5].astype(np.int64)

        channels_first = rows < cols and rows >= 5 and cols / max(rows, 1) >= 4
        if channels_first:
            boxes_cxcywh = p[0:4, :].T
            rest = p[4:, :]
            if self.cfg.anchors_has_objectness:
                if rest.shape[0] < 2:
                    raise ValueError(f"Expected objectness + class scores, got shape {p.shape}.")
                objectness = rest[0, :]
                class_scores = rest[1:, :]
            else:
                objectness = None
                class_scores = rest
            class_ids = np.argmax(class_scores, axis=0)
            scores = class_scores[class_ids, np.arange(class_scores.shape[1])]
            if objectness is not None:
                scores = scores * objectness
        elif cols >= 6:
            boxes_cxcywh = p[:, 0:4]
            objectness = p[:, 4]
            class_scores = p[:, 5:]
            class_ids = np.argmax(class_scores, axis=1)
            scores = objectness * class_scores[np.arange(rows), class_ids]
        else:
            raise ValueError(f"Unsupported YOLO output shape: {p.shape}")

        cx, cy, w, h = boxes_cxcywh.T
        boxes_xyxy = np.stack([cx - w / 2, cy - h / 2, cx + w / 2, cy + h / 2], axis=1)
        return boxes_xyxy, scores, class_ids.astype(np.int64)

    @staticmethod
    def _in_pixels(boxes: np.ndarray, lb: LetterboxResult) -> np.ndarray:
        out = boxes.astype(np.float64, copy=True)
        canvas_w, canvas_h = lb.size
        if out.size and float(np.abs(out).max()) <= 1.5:
            out[:, [0, 2]] *= canvas_w
            out[:, [1, 3]] *= canvas_h
        return out

    def to_canvas(self, boxes: np.ndarray, lb: LetterboxResult) -> np.ndarray:
        """
        xyxy boxes normalized to the model input canvas (padding included).
        """

        out = self._in_pixels(boxes, lb)
        canvas_w, canvas_h = lb.size
        out[:, [0, 2]] /= canvas_w
        out[:, [1, 3]] /= canvas_h
        return np.clip(out, 0.0, 1.0)

    def to_source(self, boxes: np.ndarray, lb: LetterboxResult) -> np.ndarray:
        """
        Map xyxy boxes on the model input back to xyxy normalized to the original image.
        """

        out = self._in_pixels(boxes, lb)

        dw, dh = lb.pad
        rw, rh = lb.ratio
        orig_w, orig_h = lb.orig_size
        out[:, [0, 2]] = (out[:, [0, 2]] - dw) / rw / orig_w
        out[:, [1, 3]] = (out[:, [1, 3]] - dh) / rh / orig_h
        return np.clip(out, 0.0, 1.0)
