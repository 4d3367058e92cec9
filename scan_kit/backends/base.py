from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Set, Tuple

import numpy as np

DEFAULT_INPUT_SIZE: Tuple[int, int] = (640, 640)


class ModelHandle:
    """
    A loaded detection model.

    Subclasses expose the input the model declares and run one prediction on a
    model-sized BGR image, returning every named output.
    """

    backend_name: str = "base"

    def __init__(self, path: Path):
        self.path = Path(path)
        self.input_name: str = "image"
        self.input_size: Tuple[int, int] = DEFAULT_INPUT_SIZE
        self.input_names: Set[str] = {self.input_name}
        self.metadata: Dict[str, Any] = {}

    def accepts(self, name: str) -> bool:
        return name in self.input_names

    def predict(self, image_bgr: np.ndarray, extra_inputs: Optional[Mapping[str, float]] = None) -> Dict[str, Any]:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}({str(self.path)!r}, input={self.input_name}{self.input_size})"
