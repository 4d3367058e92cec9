from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .types import Box


class CoordinateConvention:
    """
    Strategy that turns four raw box scalars into a normalized `Box`.

    The returned box is not clamped; plausibility is decided by the decoder.
    """

    name: str = ""

    def to_box(self, a0: float, a1: float, a2: float, a3: float) -> Box:
        raise NotImplementedError


@dataclass(frozen=True)
class CenterForm(CoordinateConvention):
    """(cx, cy, w, h), normalized."""

    name: str = "xywh"

    def to_box(self, a0: float, a1: float, a2: float, a3: float) -> Box:
        return Box(a0 - a2 / 2, a1 - a3 / 2, a2, a3)


@dataclass(frozen=True)
class CornerForm(CoordinateConvention):
    """(x1, y1, x2, y2) divided by `scale` (1.0 for already normalized corners)."""

    name: str = "xyxy"
    scale: float = 1.0

    def to_box(self, a0: float, a1: float, a2: float, a3: float) -> Box:
        x1, y1, x2, y2 = a0 / self.scale, a1 / self.scale, a2 / self.scale, a3 / self.scale
        return Box(x1, y1, x2 - x1, y2 - y1)


ABSOLUTE_REFERENCE_SIZE = 640.0

_REGISTRY: Dict[str, CoordinateConvention] = {}


def register_convention(convention: CoordinateConvention) -> None:
    if not convention.name:
        raise ValueError("convention must have a name")
    _REGISTRY[convention.name] = convention


def get_convention(name: str) -> CoordinateConvention:
    try:
        return _REGISTRY[name]
    except KeyError:
        raise KeyError(f"Unknown box format {name!r}; known: {sorted(_REGISTRY)}") from None


def known_conventions() -> List[str]:
    return sorted(_REGISTRY)


register_convention(CenterForm())
register_convention(CornerForm())
register_convention(CornerForm(name="xyxy_abs", scale=ABSOLUTE_REFERENCE_SIZE))

DEFAULT_PROBE_ORDER: Sequence[str] = ("xywh", "xyxy", "xyxy_abs")


def resolve_conventions(
    declared: Optional[str] = None,
    probe_order: Sequence[str] = DEFAULT_PROBE_ORDER,
    reference_size: float = ABSOLUTE_REFERENCE_SIZE,
) -> List[CoordinateConvention]:
    """
    Conventions to try, in order.

    A declared box format short-circuits probing. `reference_size` rescales the
    absolute corner convention when the model is not exported at 640.
    """

    names = [declared] if declared else list(probe_order)
    conventions = []
    for name in names:
        conv = get_convention(name)
        if name == "xyxy_abs" and reference_size != ABSOLUTE_REFERENCE_SIZE:
            conv = CornerForm(name="xyxy_abs", scale=float(reference_size))
        conventions.append(conv)
    return conventions
