"""
Concrete 4-D CPU tensor.

`Tensor` owns a single contiguous, one-dimensional numpy buffer plus a
shape `(N, C, H, W)`. Element `(n, c, h, w)` is stored at flat index
`((n*C + c)*H + h)*W + w`. The class body only handles construction and
basic properties; operations are contributed by mixins:

- `TensorMixinArithmetic`: elementwise arithmetic, scaling, clipping, matmul;
- `TensorMixinReduction`: sums, means, norms;
- `TensorMixinMemory`: copies, fills, reshape and transpose;
- `TensorMixinFactory`: zeros/ones/uniform/normal/from_numpy/wrap.

Tensors carry no autograd state. Layers compute gradients by hand.
"""

from __future__ import annotations

from typing import Optional, Sequence, Union

import numpy as np

from ...domain._errors import ShapeMismatchError
from .mixins import (
    TensorMixinArithmetic,
    TensorMixinFactory,
    TensorMixinMemory,
    TensorMixinReduction,
)
from .mixins._memory import _normalize_shape


class Tensor(
    TensorMixinArithmetic,
    TensorMixinReduction,
    TensorMixinMemory,
    TensorMixinFactory,
):
    """
    Dense 4-D tensor backed by a flat numpy buffer.

    Parameters
    ----------
    shape : int | Sequence[int] | None
        Tensor shape with 1 to 4 entries (padded with trailing 1s). May be
        omitted when `data` is given.
    dtype : numpy dtype, optional
        Element type. Defaults to float32.
    data : array-like | None
        Initial contents, copied. Must have exactly `prod(shape)` elements.
        When omitted the tensor is zero-filled.

    Raises
    ------
    ShapeMismatchError
        If `data` has a different number of elements than `shape`.
    """

    def __init__(
        self,
        shape: Optional[Union[int, Sequence[int]]] = None,
        *,
        dtype=np.float32,
        data=None,
    ) -> None:
        if shape is None and data is None:
            raise ValueError("Tensor requires a shape or data")

        if data is None:
            self._shape = _normalize_shape(shape)
            self._data = np.zeros(int(np.prod(self._shape)), dtype=dtype)
            return

        arr = np.asarray(data, dtype=dtype)
        self._shape = _normalize_shape(arr.shape if shape is None else shape)
        if arr.size != int(np.prod(self._shape)):
            raise ShapeMismatchError(
                "Tensor",
                f"data has {arr.size} elements but shape {self._shape} needs "
                f"{int(np.prod(self._shape))}",
                expected=self._shape,
                actual=arr.shape,
            )
        self._data = np.array(arr, dtype=dtype, copy=True, order="C").reshape(-1)

    @classmethod
    def _from_flat(cls, flat: np.ndarray, shape: Sequence[int]) -> "Tensor":
        """Wrap an existing 1-D buffer without copying it."""
        obj = cls.__new__(cls)
        obj._shape = _normalize_shape(shape)
        obj._data = flat if flat.ndim == 1 else flat.reshape(-1)
        return obj

    @property
    def shape(self) -> tuple[int, int, int, int]:
        """Return the 4-D shape `(N, C, H, W)`."""
        return self._shape

    @property
    def dtype(self) -> np.dtype:
        """Return the element dtype."""
        return self._data.dtype

    @property
    def size(self) -> int:
        """Return the total number of elements."""
        return int(self._data.size)

    @property
    def data(self) -> np.ndarray:
        """Return the flat backing buffer (by reference)."""
        return self._data

    def shares_buffer_with(self, other: "Tensor") -> bool:
        """Return True if both tensors view the same memory."""
        return np.shares_memory(self._data, other._data)

    def __repr__(self) -> str:
        return f"Tensor(shape={self._shape}, dtype={self._data.dtype})"
