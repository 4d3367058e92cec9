from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from .conventions import ABSOLUTE_REFERENCE_SIZE, DEFAULT_PROBE_ORDER, CoordinateConvention, resolve_conventions
from .discovery import DiscoveredOutputs
from .metadata import resolve_label
from .tensor import RawOutputTensor
from .types import Box, Detection

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecoderConfig:
    """
    Settings for decoding a coordinates/confidence output pair.
    """

    min_score: float = 0.01
    min_size: float = 0.005
    # Force a single box format ("xywh", "xyxy", "xyxy_abs"); None probes in `probe_order`.
    box_format: Optional[str] = None
    probe_order: Tuple[str, ...] = tuple(DEFAULT_PROBE_ORDER)
    # Pixel size the absolute corner format is relative to.
    reference_size: float = ABSOLUTE_REFERENCE_SIZE

    def __post_init__(self) -> None:
        if not 0.0 <= self.min_score <= 1.0:
            raise ValueError("min_score must be within [0, 1]")
        if not 0.0 <= self.min_size < 1.0:
            raise ValueError("min_size must be within [0, 1)")
        if self.reference_size <= 0:
            raise ValueError("reference_size must be > 0")
        if not self.probe_order:
            raise ValueError("probe_order must not be empty")


def clamp_box(box: Box) -> Box:
    """Clamp origin into [0, 1] and shrink the size so the box stays inside the frame."""
    x = max(0.0, min(1.0, box.x))
    y = max(0.0, min(1.0, box.y))
    w = max(0.0, min(1.0 - x, box.width))
    h = max(0.0, min(1.0 - y, box.height))
    return Box(x, y, w, h)


def plausible_box(box: Box, min_size: float = 0.005) -> Optional[Box]:
    """Return the clamped box if it survives the size checks, else None."""
    if not (math.isfinite(box.width) and math.isfinite(box.height)):
        return None
    if box.width <= 0 or box.height <= 0:
        return None
    clamped = clamp_box(box)
    if clamped.width > min_size and clamped.height > min_size:
        return clamped
    return None


def best_class(conf: RawOutputTensor, row: int) -> Tuple[float, int]:
    """Arg-max over a [D, C] confidence row; ties keep the first index seen."""
    best = -math.inf
    best_idx = 0
    for c in range(conf.shape[-1]):
        v = conf.read(row, c)
        if v > best:
            best = v
            best_idx = c
    return best, best_idx


class BoxDecoder:
    """
    Decode a coordinates tensor [D, 4] plus optional confidence ([D] or [D, C])
    into normalized detections.

    The box format of a model is often unknown, so each row is tried against a
    list of coordinate conventions and the first plausible box is kept.
    """

    def __init__(self, cfg: DecoderConfig = DecoderConfig(), conventions: Optional[Sequence[CoordinateConvention]] = None):
        self.cfg = cfg
        if conventions is None:
            conventions = resolve_conventions(cfg.box_format, cfg.probe_order, cfg.reference_size)
        self.conventions = list(conventions)

    def with_box_format(self, box_format: Optional[str]) -> "BoxDecoder":
        """Decoder restricted to a declared box format (no-op when None or already forced)."""
        if not box_format or self.cfg.box_format:
            return self
        return BoxDecoder(self.cfg, resolve_conventions(box_format, reference_size=self.cfg.reference_size))

    def row_score(self, conf: Optional[RawOutputTensor], row: int) -> Tuple[float, Optional[int]]:
        if conf is None:
            return 1.0, None
        if conf.ndim == 2:
            score, idx = best_class(conf, row)
            return score, idx
        return conf.read(row), None

    def decode_row(self, a0: float, a1: float, a2: float, a3: float) -> Optional[Box]:
        for conv in self.conventions:
            box = plausible_box(conv.to_box(a0, a1, a2, a3), self.cfg.min_size)
            if box is not None:
                return box
        return None

    def decode(self, outputs: DiscoveredOutputs, class_names: Optional[Sequence[str]] = None) -> List[Detection]:
        coords = outputs.coordinates
        if coords is None:
            return []
        if coords.ndim != 2 or coords.shape[1] < 4:
            LOGGER.warning("Coordinates %s has unsupported shape %s", coords.name, coords.shape)
            return []
        conf = outputs.confidence
        if conf is not None and conf.ndim not in (1, 2):
            LOGGER.warning("Confidence %s has unsupported shape %s; ignored", conf.name, conf.shape)
            conf = None
        rows = coords.shape[0]
        if conf is not None and conf.shape[0] < rows:
            LOGGER.warning("Confidence %s has fewer rows than coordinates %s; truncating", conf.shape, coords.shape)
            rows = conf.shape[0]

        if rows > 0:
            LOGGER.debug(
                "coords[0]: %s shape=%s",
                [coords.read(0, k) for k in range(4)],
                coords.shape,
            )

        results: List[Detection] = []
        for i in range(rows):
            score, class_idx = self.row_score(conf, i)
            if score < self.cfg.min_score:
                continue
            box = self.decode_row(coords.read(i, 0), coords.read(i, 1), coords.read(i, 2), coords.read(i, 3))
            if box is None:
                continue
            label = resolve_label(class_idx, class_names)
            results.append(Detection.from_box(box, label=label, confidence=score, class_id=class_idx))

        LOGGER.debug("Decoded detections: %d", len(results))
        return results
