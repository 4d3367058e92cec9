from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np

from ..errors import ModelLoadError
from .base import ModelHandle

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass(frozen=True)
class InputDescription:
    name: str
    is_image: bool = False
    # (width, height); None when the model does not fix it.
    size: Optional[Tuple[int, int]] = None


def _positive_int(value: Any) -> Optional[int]:
    try:
        n = int(value)
    except (TypeError, ValueError):
        return None
    return n if n > 0 else None


def read_compiled_description(model_dir: PathLike) -> Tuple[List[InputDescription], Dict[str, Any]]:
    """
    Inputs and creator-defined metadata of a compiled `.mlmodelc`.

    Compiled models carry no spec; Xcode/coremlc write the same information
    to `<model>.mlmodelc/metadata.json` (a one-element list whose entry holds
    `inputSchema` and `userDefinedMetadata`). Missing or unreadable files give
    empty results.
    """

    meta_path = Path(model_dir) / "metadata.json"
    if not meta_path.is_file():
        return [], {}
    try:
        payload = json.loads(meta_path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        LOGGER.warning("Could not read %s: %s", meta_path, exc)
        return [], {}
    if isinstance(payload, list):
        payload = payload[0] if payload else {}
    if not isinstance(payload, dict):
        return [], {}

    inputs: List[InputDescription] = []
    for entry in payload.get("inputSchema") or []:
        if not isinstance(entry, dict) or not entry.get("name"):
            continue
        is_image = str(entry.get("type", "")).lower() == "image"
        width, height = _positive_int(entry.get("width")), _positive_int(entry.get("height"))
        size = (width, height) if is_image and width and height else None
        inputs.append(InputDescription(str(entry["name"]), is_image, size))

    metadata = payload.get("userDefinedMetadata")
    return inputs, dict(metadata) if isinstance(metadata, dict) else {}


class CoreMLBackend(ModelHandle):
    """
    CoreML model loaded through coremltools.

    - `.mlmodelc`: loaded as a CompiledMLModel; inputs and metadata come from
      the bundle's `metadata.json` (input "image" at 640x640 if it has none)
    - `.mlpackage` / `.mlmodel`: loaded as MLModel; a raw `.mlmodel` is compiled
      at load time by coremltools

    Prediction requires macOS.
    """

    backend_name = "coreml"

    def __init__(self, model_path: PathLike):
        try:
            import coremltools as ct  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("coremltools is required for the CoreML backend. Install with `pip install coremltools`.") from e

        super().__init__(Path(model_path))
        if not self.path.exists():
            raise FileNotFoundError(str(self.path))

        suffix = self.path.suffix.lower()
        try:
            if suffix == ".mlmodelc":
                self.model = ct.models.CompiledMLModel(str(self.path))
                inputs, metadata = read_compiled_description(self.path)
                self._use_inputs(inputs)
                self.metadata = metadata
            else:
                kwargs: Dict[str, Any] = {}
                weights = self.path.parent / "weights"
                if suffix == ".mlmodel" and weights.is_dir():
                    kwargs["weights_dir"] = str(weights)
                self.model = ct.models.MLModel(str(self.path), **kwargs)
                self._read_spec(self.model.get_spec())
        except Exception as exc:
            raise ModelLoadError(f"coremltools could not load {self.path}: {exc}") from exc

    def _read_spec(self, spec: Any) -> None:
        inputs = []
        for inp in spec.description.input:
            if inp.type.WhichOneof("Type") == "imageType":
                size = (_positive_int(inp.type.imageType.width), _positive_int(inp.type.imageType.height))
                inputs.append(InputDescription(inp.name, True, size if all(size) else None))
            else:
                inputs.append(InputDescription(inp.name))
        self._use_inputs(inputs)
        self.metadata = dict(spec.description.metadata.userDefined)

    def _use_inputs(self, inputs: List[InputDescription]) -> None:
        if not inputs:
            return
        self.input_names = {inp.name for inp in inputs}
        images = [inp for inp in inputs if inp.is_image]
        chosen = next((inp for inp in images if inp.name == "image"), None) or (images[0] if images else inputs[0])
        self.input_name = chosen.name
        if chosen.size is not None:
            self.input_size = chosen.size

    def predict(self, image_bgr: np.ndarray, extra_inputs: Optional[Mapping[str, float]] = None) -> Dict[str, Any]:
        from PIL import Image  # type: ignore

        rgb = np.ascontiguousarray(image_bgr[:, :, ::-1])
        features: Dict[str, Any] = {self.input_name: Image.fromarray(rgb)}
        for name, value in (extra_inputs or {}).items():
            if self.accepts(name):
                features[name] = float(value)
        return dict(self.model.predict(features))
