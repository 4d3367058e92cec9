from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .backends.base import ModelHandle
from .decoder import BoxDecoder
from .discovery import as_tensors, discover_outputs
from .letterbox import LetterboxConfig, LetterboxResult, letterbox, unletterbox_detection
from .postprocess import YoloPostConfig, YoloPostprocessor
from .types import Detection

LOGGER = logging.getLogger(__name__)

SCALE_MODES = ("fit", "fill")


@dataclass(frozen=True)
class FallbackConfig:
    enabled: bool = True
    # Tried in order until one yields detections.
    scale_modes: Tuple[str, ...] = SCALE_MODES
    post: YoloPostConfig = field(default_factory=YoloPostConfig)

    def __post_init__(self) -> None:
        unknown = [m for m in self.scale_modes if m not in SCALE_MODES]
        if unknown:
            raise ValueError(f"Unknown scale modes: {unknown}")


def primary_output(outputs: Mapping[str, Any]) -> Optional[np.ndarray]:
    """First numeric output with at least two dimensions."""
    for name, value in outputs.items():
        arr = np.asarray(value)
        if arr.dtype.kind in "fiu" and arr.ndim >= 2:
            LOGGER.debug("Fallback primary output: %s%s", name, arr.shape)
            return arr
    return None


class VisionFallback:
    """
    Generic object-detection pass used when direct decoding yields nothing.

    The image is first fitted into the model input (letterbox) and, if that
    finds nothing, stretched to fill it. Outputs are read either as a
    coordinates/confidence pair or as a single raw YOLO tensor.
    """

    def __init__(
        self,
        cfg: FallbackConfig = FallbackConfig(),
        decoder: Optional[BoxDecoder] = None,
        letterbox_cfg: LetterboxConfig = LetterboxConfig(),
        map_to_source: bool = True,
    ):
        self.cfg = cfg
        self.decoder = decoder or BoxDecoder()
        self.letterbox_cfg = letterbox_cfg
        # Off: boxes stay normalized to the model input canvas.
        self.map_to_source = map_to_source
        self.post = YoloPostprocessor(cfg.post)

    def run(
        self,
        handle: ModelHandle,
        image_bgr: np.ndarray,
        class_names: Optional[Sequence[str]] = None,
        extra_inputs: Optional[Mapping[str, float]] = None,
        decoder: Optional[BoxDecoder] = None,
    ) -> List[Detection]:
        """
        Run the fallback passes until one yields detections.

        `decoder` overrides the pair decoder for this call, e.g. one restricted
        to the box format a model declares.
        """

        if not self.cfg.enabled:
            return []
        pair_decoder = decoder or self.decoder
        for mode in self.cfg.scale_modes:
            detections = self._run_mode(handle, image_bgr, mode, class_names, extra_inputs, pair_decoder)
            LOGGER.info("Fallback (%s) detections: %d", mode, len(detections))
            if detections:
                return detections
        return []

    def _run_mode(
        self,
        handle: ModelHandle,
        image_bgr: np.ndarray,
        mode: str,
        class_names: Optional[Sequence[str]],
        extra_inputs: Optional[Mapping[str, float]],
        decoder: BoxDecoder,
    ) -> List[Detection]:
        lb = letterbox(
            image_bgr,
            new_shape=self.letterbox_cfg.new_shape or handle.input_size,
            color=self.letterbox_cfg.color,
            scale_fill=mode == "fill",
            scaleup=self.letterbox_cfg.scaleup,
        )
        outputs = handle.predict(lb.image, extra_inputs)

        discovered = discover_outputs(as_tensors(outputs))
        if discovered.usable:
            detections = decoder.decode(discovered, class_names)
            return self._remap(detections, lb, decoder.cfg.min_size) if self.map_to_source else detections

        preds = primary_output(outputs)
        if preds is None:
            LOGGER.warning("Fallback found no decodable output among %s", list(outputs.keys()))
            return []
        try:
            return self.post.process(preds, lb, class_names, map_to_source=self.map_to_source)
        except ValueError as exc:
            LOGGER.warning("Fallback could not decode output: %s", exc)
            return []

    @staticmethod
    def _remap(detections: List[Detection], lb: LetterboxResult, min_size: float) -> List[Detection]:
        mapped = (unletterbox_detection(det, lb, min_size) for det in detections)
        return [det for det in mapped if det is not None]
