from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Union

import numpy as np

from ..errors import ModelLoadError
from .base import ModelHandle

PathLike = Union[str, Path]


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers (e.g., ["CUDAExecutionProvider", "CPUExecutionProvider"])
    - input_name: override the auto-selected image input if needed
    """

    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None


class OnnxRuntimeBackend(ModelHandle):
    """
    ONNX Runtime backend for hosts without CoreML.

    Feeds an NCHW float32 RGB blob in [0, 1] and returns every output by name.
    """

    backend_name = "onnxruntime"

    def __init__(self, model_path: PathLike, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        super().__init__(Path(model_path))
        if not self.path.exists():
            raise FileNotFoundError(str(self.path))

        providers = list(cfg.providers) if cfg.providers is not None else None
        try:
            self.session = ort.InferenceSession(str(self.path), sess_options=ort.SessionOptions(), providers=providers)
        except Exception as exc:
            raise ModelLoadError(f"onnxruntime could not load {self.path}: {exc}") from exc

        inputs = self.session.get_inputs()
        self.input_names = {i.name for i in inputs}
        image_input = next((i for i in inputs if i.name == (cfg.input_name or "images")), inputs[0])
        self.input_name = cfg.input_name or image_input.name
        shape = list(image_input.shape)
        if len(shape) == 4 and isinstance(shape[2], int) and isinstance(shape[3], int):
            self.input_size = (int(shape[3]), int(shape[2]))
        self._input_types = {i.name: i.type for i in inputs}
        self.output_names = [o.name for o in self.session.get_outputs()]
        self.metadata = dict(self.session.get_modelmeta().custom_metadata_map)

    def predict(self, image_bgr: np.ndarray, extra_inputs: Optional[Mapping[str, float]] = None) -> Dict[str, Any]:
        # BGR -> RGB, normalize, HWC -> CHW, add batch
        blob = image_bgr[:, :, ::-1].astype(np.float32) / 255.0
        blob = np.transpose(blob, (2, 0, 1))[None, ...]

        inputs: Dict[str, Any] = {self.input_name: blob}
        for name, value in (extra_inputs or {}).items():
            if self.accepts(name):
                dtype = np.float64 if "double" in self._input_types.get(name, "") else np.float32
                inputs[name] = np.array([value], dtype=dtype)
        outputs = self.session.run(self.output_names, inputs)
        return dict(zip(self.output_names, outputs))
