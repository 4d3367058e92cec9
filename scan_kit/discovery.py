from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence

import numpy as np

from .tensor import RawOutputTensor

LOGGER = logging.getLogger(__name__)

COORDINATE_NAMES: Sequence[str] = ("coordinates", "boxes")
CONFIDENCE_NAMES: Sequence[str] = ("confidence", "scores")


@dataclass(frozen=True)
class DiscoveredOutputs:
    coordinates: Optional[RawOutputTensor]
    confidence: Optional[RawOutputTensor]

    @property
    def usable(self) -> bool:
        return self.coordinates is not None


def as_tensors(outputs: Mapping[str, object]) -> Dict[str, RawOutputTensor]:
    """
    Normalize a model's output mapping to `RawOutputTensor`s.

    Values that are not array-like (e.g. string labels) are skipped. A leading
    batch dimension of 1 on 3-D outputs is dropped.
    """

    tensors: Dict[str, RawOutputTensor] = {}
    for name, value in outputs.items():
        if isinstance(value, RawOutputTensor):
            tensor = value
        else:
            arr = np.asarray(value)
            if arr.dtype.kind not in "fiu":
                LOGGER.debug("Output %s has non-numeric dtype %s; skipped", name, arr.dtype)
                continue
            tensor = RawOutputTensor.from_array(name, arr)
        tensors[name] = tensor.squeeze_batch()
    return tensors


def discover_outputs(tensors: Mapping[str, RawOutputTensor]) -> DiscoveredOutputs:
    """
    Pick the box coordinate tensor ([D, 4]) and the confidence tensor ([D] or [D, C]).

    Conventional names win. Otherwise outputs are scanned in order and the
    first match for each role is taken.
    """

    coords = _first_named(tensors, COORDINATE_NAMES)
    conf = _first_named(tensors, CONFIDENCE_NAMES)

    if coords is None or conf is None:
        for tensor in tensors.values():
            last = tensor.shape[-1] if tensor.ndim else 0
            if coords is None and tensor.ndim == 2 and last == 4:
                coords = tensor
            if conf is None and tensor.ndim == 1:
                conf = tensor
            if conf is None and tensor.ndim == 2 and last > 4:
                conf = tensor

    if coords is None:
        LOGGER.warning("No coordinates output found among %s", list(tensors.keys()))
    else:
        LOGGER.debug(
            "Using coordinates=%s%s confidence=%s%s",
            coords.name,
            coords.shape,
            conf.name if conf is not None else None,
            conf.shape if conf is not None else "",
        )
    return DiscoveredOutputs(coordinates=coords, confidence=conf)


def _first_named(tensors: Mapping[str, RawOutputTensor], names: Sequence[str]) -> Optional[RawOutputTensor]:
    for name in names:
        if name in tensors:
            return tensors[name]
    return None
