from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from .backends.base import ModelHandle
from .errors import ModelUnavailable
from .metadata import PACKAGE_DATA_DIR
from .runtime import load_model

LOGGER = logging.getLogger(__name__)

ModelLoader = Callable[[Path], ModelHandle]

MODEL_SUFFIXES = (".mlpackage", ".mlmodelc", ".mlmodel", ".onnx")


@dataclass(frozen=True)
class ModelCandidate:
    path: Path
    # The `.mlpackage` the model came from, if any (its Metadata.json holds class names).
    package: Optional[Path] = None


@dataclass(frozen=True)
class LocatorConfig:
    search_roots: Tuple[Path, ...] = (Path("models"),)
    # Exporters sometimes drop the "v".
    candidate_names: Tuple[str, ...] = ("yolov11n", "yolo11n")
    allow_onnx: bool = True

    def __post_init__(self) -> None:
        if not self.candidate_names:
            raise ValueError("candidate_names must not be empty")


class ModelLocator:
    """
    Finds and loads the first usable detection model under the search roots.

    Order:
    1. `<name>.mlmodelc` (precompiled)
    2. `<name>.mlpackage` -> embedded `model.mlmodelc`, then `model.mlmodel`
    3. any `*.mlmodel`
    4. `<name>.onnx`, then any `*.onnx` (when allowed)
    """

    def __init__(self, cfg: LocatorConfig = LocatorConfig(), loader: Optional[ModelLoader] = None):
        self.cfg = cfg
        self._loader = loader or load_model

    def candidates(self) -> Iterator[ModelCandidate]:
        roots = [Path(r) for r in self.cfg.search_roots]
        names = self.cfg.candidate_names
        seen = set()

        def emit(candidate: ModelCandidate) -> Iterator[ModelCandidate]:
            key = candidate.path.resolve()
            if key not in seen:
                seen.add(key)
                yield candidate

        for root in roots:
            for name in names:
                path = root / f"{name}.mlmodelc"
                if path.exists():
                    yield from emit(ModelCandidate(path))

        for root in roots:
            for name in names:
                pkg = root / f"{name}.mlpackage"
                if not pkg.is_dir():
                    continue
                data = pkg / PACKAGE_DATA_DIR
                for inner in ("model.mlmodelc", "model.mlmodel"):
                    if (data / inner).exists():
                        yield from emit(ModelCandidate(data / inner, package=pkg))

        for root in roots:
            for path in _sorted_glob(root, "*.mlmodel"):
                yield from emit(ModelCandidate(path))

        if self.cfg.allow_onnx:
            for root in roots:
                for name in names:
                    path = root / f"{name}.onnx"
                    if path.exists():
                        yield from emit(ModelCandidate(path))
            for root in roots:
                for path in _sorted_glob(root, "*.onnx"):
                    yield from emit(ModelCandidate(path))

    def load(self) -> Tuple[ModelHandle, ModelCandidate]:
        """Load the first candidate that succeeds; raise ModelUnavailable if none does."""
        tried: List[Path] = []
        for candidate in self.candidates():
            tried.append(candidate.path)
            LOGGER.info("Attempting to load model at: %s", candidate.path)
            try:
                handle = self._loader(candidate.path)
            except ImportError as exc:
                LOGGER.warning("Runtime missing for %s: %s", candidate.path, exc)
                continue
            except Exception as exc:
                LOGGER.warning("Failed to load %s: %s", candidate.path, exc)
                continue
            LOGGER.info("Loaded model %r", handle)
            return handle, candidate

        raise ModelUnavailable(
            f"No model could be loaded from {[str(r) for r in self.cfg.search_roots]} (tried {[str(p) for p in tried]})"
        )


def list_model_files(roots: Sequence[Path]) -> List[Path]:
    """Every model artifact under the roots, recursively (debug helper)."""
    found: List[Path] = []
    for root in roots:
        root = Path(root)
        if not root.is_dir():
            continue
        for path in sorted(root.rglob("*")):
            if path.suffix.lower() in MODEL_SUFFIXES:
                found.append(path)
    return found


def _sorted_glob(root: Path, pattern: str) -> List[Path]:
    if not root.is_dir():
        return []
    return sorted(p for p in root.glob(pattern) if p.exists())
