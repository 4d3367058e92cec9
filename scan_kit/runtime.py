from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence, Union

from .backends.base import ModelHandle

PathLike = Union[str, Path]

COREML_SUFFIXES = (".mlmodelc", ".mlpackage", ".mlmodel")
ONNX_SUFFIXES = (".onnx",)


def resolve_path(path: PathLike, root: Optional[PathLike] = None) -> Path:
    """
    Resolve `path` to an absolute Path.

    - Absolute paths are returned as-is.
    - Relative paths are resolved against `root`, the working directory if None.
    """

    p = Path(path)
    if p.is_absolute():
        return p

    base = Path(root).resolve() if root is not None else Path.cwd()
    return (base / p).resolve()


def infer_backend(path: PathLike) -> str:
    suffix = Path(path).suffix.lower()
    if suffix in COREML_SUFFIXES:
        return "coreml"
    if suffix in ONNX_SUFFIXES:
        return "onnxruntime"
    raise ValueError(f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly.")


def load_model(
    model_path: PathLike,
    *,
    backend: Optional[str] = None,
    onnx_providers: Optional[Sequence[str]] = None,
) -> ModelHandle:
    """
    Load a model file into a ModelHandle.

    Args:
        model_path: `.mlmodelc`, `.mlpackage`, `.mlmodel` or `.onnx`
        backend: "coreml" or "onnxruntime"; None infers it from the extension
    """

    path = Path(model_path)
    chosen = (backend or infer_backend(path)).lower()

    if chosen == "coreml":
        from .backends.coreml_backend import CoreMLBackend

        return CoreMLBackend(path)

    if chosen == "onnxruntime":
        from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

        return OnnxRuntimeBackend(path, OnnxRuntimeBackendConfig(providers=onnx_providers))

    raise ValueError(f"Unsupported backend: {backend!r}")
