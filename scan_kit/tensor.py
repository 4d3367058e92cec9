from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence, Tuple

import numpy as np

LOGGER = logging.getLogger(__name__)


class ElementType(str, Enum):
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    FLOAT16 = "float16"
    OTHER = "other"

    @classmethod
    def from_dtype(cls, dtype: np.dtype) -> "ElementType":
        dtype = np.dtype(dtype)
        if dtype == np.float32:
            return cls.FLOAT32
        if dtype == np.float64:
            return cls.FLOAT64
        if dtype == np.float16:
            return cls.FLOAT16
        return cls.OTHER

    @property
    def readable(self) -> bool:
        return self in (ElementType.FLOAT32, ElementType.FLOAT64)


def _contiguous_strides(shape: Sequence[int]) -> Tuple[int, ...]:
    strides = []
    step = 1
    for dim in reversed(shape):
        strides.append(step)
        step *= int(dim)
    return tuple(reversed(strides))


@dataclass
class RawOutputTensor:
    """
    Named, strided view over a flat numeric buffer.

    `strides` are expressed in elements, not bytes. Only float32 and float64
    buffers are decoded; any other element type (float16 in particular) reads
    as 0.0 and is reported once per tensor.
    """

    name: str
    buffer: np.ndarray
    shape: Tuple[int, ...]
    strides: Tuple[int, ...] = ()
    offset: int = 0
    element_type: ElementType = field(init=False)
    _warned: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        self.buffer = np.asarray(self.buffer).reshape(-1)
        self.shape = tuple(int(d) for d in self.shape)
        if not self.strides:
            self.strides = _contiguous_strides(self.shape)
        self.strides = tuple(int(s) for s in self.strides)
        if len(self.strides) != len(self.shape):
            raise ValueError(f"strides {self.strides} do not match shape {self.shape}")
        self.element_type = ElementType.from_dtype(self.buffer.dtype)

    @classmethod
    def from_array(cls, name: str, array: np.ndarray) -> "RawOutputTensor":
        """
        Wrap a NumPy array, keeping its memory layout.

        Non-contiguous views (e.g. transposes) keep their strides so rows are
        read in logical order without copying the data.
        """

        arr = np.asarray(array)
        itemsize = arr.dtype.itemsize
        if arr.ndim == 0:
            return cls(name=name, buffer=arr.reshape(1), shape=(), strides=())
        if any(s % itemsize for s in arr.strides) or any(s < 0 for s in arr.strides):
            arr = np.ascontiguousarray(arr)
        strides = tuple(s // itemsize for s in arr.strides)

        # Flat window over the base memory that covers every addressable element.
        span = 1 + sum((d - 1) * s for d, s in zip(arr.shape, strides)) if arr.size else 0
        flat = np.lib.stride_tricks.as_strided(arr, shape=(span,), strides=(itemsize,), writeable=False)
        return cls(name=name, buffer=flat, shape=tuple(arr.shape), strides=strides)

    @property
    def ndim(self) -> int:
        return len(self.shape)

    @property
    def count(self) -> int:
        return int(np.prod(self.shape)) if self.shape else 1

    def squeeze_batch(self) -> "RawOutputTensor":
        """Drop a leading batch dimension of size 1 from 3-D tensors."""
        if self.ndim == 3 and self.shape[0] == 1:
            return RawOutputTensor(
                name=self.name,
                buffer=self.buffer,
                shape=self.shape[1:],
                strides=self.strides[1:],
                offset=self.offset,
            )
        return self

    def linear_index(self, *indices: int) -> int:
        if len(indices) != self.ndim:
            raise IndexError(f"{self.name}: expected {self.ndim} indices, got {len(indices)}")
        offset = self.offset
        for idx, dim, stride in zip(indices, self.shape, self.strides):
            if not 0 <= idx < dim:
                raise IndexError(f"{self.name}: index {indices} out of range for shape {self.shape}")
            offset += idx * stride
        return offset

    def read(self, *indices: int) -> float:
        offset = self.linear_index(*indices)
        if not self.element_type.readable:
            if not self._warned:
                LOGGER.warning(
                    "Tensor %s has unsupported element type %s (%s); reading zeros",
                    self.name,
                    self.element_type.value,
                    self.buffer.dtype,
                )
                self._warned = True
            return 0.0
        return float(self.buffer[offset])

    def to_numpy(self) -> np.ndarray:
        """Materialize the logical tensor as float64 (unsupported types become zeros)."""
        if not self.element_type.readable:
            return np.zeros(self.shape, dtype=np.float64)
        step = self.buffer.strides[0]
        view = np.lib.stride_tricks.as_strided(
            self.buffer[self.offset:],
            shape=self.shape,
            strides=tuple(s * step for s in self.strides),
            writeable=False,
        )
        return np.array(view, dtype=np.float64)
