from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

import numpy as np

from .backends.base import ModelHandle
from .config import DetectorConfig
from .decoder import BoxDecoder
from .discovery import as_tensors, discover_outputs
from .errors import ImageConversionFailure, ModelUnavailable, TensorShapeUnrecognized
from .fallback import VisionFallback
from .letterbox import as_bgr, letterbox, unletterbox_detection
from .locator import ModelCandidate, ModelLocator
from .metadata import (
    ClassNameTable,
    box_format_from_metadata,
    class_names_from_metadata,
    read_package_metadata,
)
from .types import Detection

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]
DetectionCallback = Callable[[List[Detection]], None]


class DetectorService:
    """
    Object detection service: model discovery -> direct decode -> fallback.

    All inference runs on one background worker, so requests execute one at a
    time in submission order. `detect` returns a Future that always resolves to
    a (possibly empty) list of detections; failures are logged, never raised.

    The model handle and class-name table are loaded on first use and kept for
    the lifetime of the service.
    """

    def __init__(
        self,
        cfg: DetectorConfig = DetectorConfig(),
        *,
        locator: Optional[ModelLocator] = None,
        fallback: Optional[VisionFallback] = None,
    ):
        self.cfg = cfg
        self.locator = locator or ModelLocator(cfg.locator)
        self.decoder = BoxDecoder(cfg.decoder)
        self.fallback = fallback or VisionFallback(cfg.fallback, self.decoder, cfg.letterbox, cfg.map_to_source)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="scan-kit-detector")
        self._init_lock = threading.Lock()
        self._model_loaded = False
        self._model: Optional[ModelHandle] = None
        self._candidate: Optional[ModelCandidate] = None
        self._class_names: Optional[ClassNameTable] = None

    # ------------------------------------------------------------------ #
    # Lazy state
    # ------------------------------------------------------------------ #
    def model(self) -> Optional[ModelHandle]:
        """
        The cached model handle, discovering and loading it on first call.

        Discovery runs once; if it fails every request answers with an empty
        list until `reset()`.
        """

        if self._model_loaded:
            return self._model
        with self._init_lock:
            if not self._model_loaded:
                try:
                    self._model, self._candidate = self.locator.load()
                except ModelUnavailable as exc:
                    LOGGER.warning("%s", exc)
                    self._model, self._candidate = None, None
                self._class_names = self._load_class_names(self._model, self._candidate)
                self._model_loaded = True
        return self._model

    @property
    def class_names(self) -> ClassNameTable:
        """Class names of the loaded model (empty when unknown)."""
        self.model()
        return self._class_names or ()

    def reset(self) -> None:
        """Forget the cached model so the next request runs discovery again."""
        with self._init_lock:
            self._model_loaded = False
            self._model = None
            self._candidate = None
            self._class_names = None

    @staticmethod
    def _load_class_names(handle: Optional[ModelHandle], candidate: Optional[ModelCandidate]) -> Optional[ClassNameTable]:
        if candidate is not None and candidate.package is not None:
            names = class_names_from_metadata(read_package_metadata(candidate.package))
            if names:
                LOGGER.info("Loaded %d class names from %s", len(names), candidate.package)
                return names
        if handle is not None:
            names = class_names_from_metadata(handle.metadata)
            if names:
                LOGGER.info("Loaded %d class names from model metadata", len(names))
                return names
        return None

    def _decoder_for(self, handle: ModelHandle) -> BoxDecoder:
        declared = box_format_from_metadata(handle.metadata)
        if declared is None and self._candidate is not None and self._candidate.package is not None:
            declared = box_format_from_metadata(read_package_metadata(self._candidate.package))
        if declared:
            try:
                return self.decoder.with_box_format(declared)
            except KeyError as exc:
                LOGGER.warning("Ignoring declared box format: %s", exc)
        return self.decoder

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def detect(self, image: np.ndarray, callback: Optional[DetectionCallback] = None) -> "Future[List[Detection]]":
        """
        Queue one detection request on the worker.

        `callback`, if given, is called once with the result list from the
        worker thread. After `close()` the future is already resolved to [].
        """

        return self._submit(self.detect_sync, image, callback)

    def detect_path(self, path: PathLike, callback: Optional[DetectionCallback] = None) -> "Future[List[Detection]]":
        return self._submit(self._detect_path, Path(path), callback)

    def _submit(self, fn, arg, callback: Optional[DetectionCallback]) -> "Future[List[Detection]]":
        try:
            future = self._executor.submit(fn, arg)
        except RuntimeError as exc:
            LOGGER.warning("Detector is closed: %s", exc)
            future = Future()
            future.set_result([])
        if callback is not None:
            future.add_done_callback(lambda f: callback(f.result()))
        return future

    def detect_sync(self, image: np.ndarray) -> List[Detection]:
        """Run one detection request on the calling thread. Never raises."""
        try:
            return self._detect(image)
        except Exception:
            LOGGER.exception("Detection failed")
            return []

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "DetectorService":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #
    def _detect_path(self, path: Path) -> List[Detection]:
        try:
            import cv2  # type: ignore

            image = cv2.imread(str(path), cv2.IMREAD_COLOR)
        except Exception:
            LOGGER.exception("Could not read image at path: %s", path)
            return []
        if image is None:
            LOGGER.warning("Could not read image at path: %s", path)
            return []
        return self.detect_sync(image)

    def _detect(self, image: np.ndarray) -> List[Detection]:
        try:
            image_bgr = as_bgr(image)
        except ImageConversionFailure as exc:
            LOGGER.warning("Image conversion failed: %s", exc)
            return []

        handle = self.model()
        if handle is None:
            LOGGER.warning("Model unavailable; no detections")
            return []

        try:
            direct = self.predict_direct(handle, image_bgr)
        except TensorShapeUnrecognized as exc:
            LOGGER.warning("%s", exc)
            direct = []
        except Exception:
            LOGGER.exception("Direct inference failed")
            direct = []
        if direct:
            return direct

        try:
            return self.fallback.run(
                handle, image_bgr, self._class_names, self.cfg.extra_inputs(), decoder=self._decoder_for(handle)
            )
        except Exception:
            LOGGER.exception("Fallback detection failed")
            return []

    def predict_direct(self, handle: ModelHandle, image_bgr: np.ndarray) -> List[Detection]:
        """
        Letterbox into the model input, run it, and decode the coordinates /
        confidence outputs.
        """

        lb = letterbox(
            image_bgr,
            new_shape=self.cfg.letterbox.new_shape or handle.input_size,
            color=self.cfg.letterbox.color,
            scaleup=self.cfg.letterbox.scaleup,
        )
        outputs = handle.predict(lb.image, self.cfg.extra_inputs())
        LOGGER.debug("Output feature names: %s", list(outputs.keys()))

        discovered = discover_outputs(as_tensors(outputs))
        if not discovered.usable:
            raise TensorShapeUnrecognized(f"No coordinates output among {list(outputs.keys())}")

        detections = self._decoder_for(handle).decode(discovered, self._class_names)
        if self.cfg.map_to_source:
            mapped = (unletterbox_detection(det, lb, self.cfg.decoder.min_size) for det in detections)
            detections = [det for det in mapped if det is not None]
        LOGGER.info("Direct detections: %d", len(detections))
        return detections


def open_detector(
    search_roots: Tuple[PathLike, ...] = ("models",),
    cfg: Optional[DetectorConfig] = None,
) -> DetectorService:
    """Convenience constructor for a service over the given model directories."""
    base = cfg or DetectorConfig()
    locator_cfg = replace(base.locator, search_roots=tuple(Path(r) for r in search_roots))
    return DetectorService(replace(base, locator=locator_cfg))
