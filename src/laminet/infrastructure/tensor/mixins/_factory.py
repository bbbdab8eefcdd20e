"""
Construction helpers for `Tensor`.

The random constructors draw from the process-wide seeded streams in
`tensor._random`, so two processes that call `set_seed` with the same value
and construct tensors in the same order obtain identical values.
"""

from __future__ import annotations

from typing import Sequence, Union

import numpy as np

from .._random import normal_array, uniform_array
from ._memory import _normalize_shape

ShapeLike = Union[int, Sequence[int]]


class TensorMixinFactory:
    """
    Classmethod constructors: constant fills, seeded random fills, numpy
    import and buffer wrapping.
    """

    @classmethod
    def zeros(cls, shape: ShapeLike, *, dtype=np.float32):
        """Tensor of zeros."""
        return cls(shape, dtype=dtype)

    @classmethod
    def ones(cls, shape: ShapeLike, *, dtype=np.float32):
        """Tensor of ones."""
        return cls(shape, dtype=dtype).fill(1.0)

    @classmethod
    def full(cls, shape: ShapeLike, value: float, *, dtype=np.float32):
        """Tensor filled with `value`."""
        return cls(shape, dtype=dtype).fill(value)

    @classmethod
    def uniform(cls, shape: ShapeLike, low: float, high: float, *, dtype=np.float32):
        """
        Tensor drawn from U[low, high) using the seeded random streams.

        Raises
        ------
        ValueError
            If `low > high`.
        """
        if low > high:
            raise ValueError(f"uniform requires low <= high, got [{low}, {high}]")
        shape4 = _normalize_shape(shape)
        flat = uniform_array(int(np.prod(shape4)), low, high, dtype=dtype)
        return cls._from_flat(flat, shape4)

    @classmethod
    def normal(cls, shape: ShapeLike, mean: float, std: float, *, dtype=np.float32):
        """
        Tensor drawn from N(mean, std**2) using the seeded random streams.

        Raises
        ------
        ValueError
            If `std` is negative.
        """
        if std < 0:
            raise ValueError(f"normal requires std >= 0, got {std}")
        shape4 = _normalize_shape(shape)
        flat = normal_array(int(np.prod(shape4)), mean, std, dtype=dtype)
        return cls._from_flat(flat, shape4)

    @classmethod
    def from_numpy(cls, array: np.ndarray, *, dtype=None):
        """
        Copy a 1- to 4-D numpy array into a new tensor.

        Parameters
        ----------
        array : np.ndarray
            Source data. Shapes with fewer than 4 axes get trailing 1s.
        dtype : numpy dtype | None
            Target dtype; defaults to the array's dtype when it is floating,
            float32 otherwise.
        """
        arr = np.asarray(array)
        if dtype is None:
            dtype = arr.dtype if np.issubdtype(arr.dtype, np.floating) else np.float32
        return cls(arr.shape, dtype=dtype, data=arr)

    @classmethod
    def wrap(cls, buffer: np.ndarray, shape: ShapeLike):
        """
        Create a tensor that shares `buffer` instead of copying it.

        Used for weight tying: two layers wrapping the same buffer see each
        other's updates.

        Raises
        ------
        ValueError
            If `buffer` is not C-contiguous or its size differs from `shape`.
        """
        if not isinstance(buffer, np.ndarray) or not buffer.flags["C_CONTIGUOUS"]:
            raise ValueError("wrap() requires a C-contiguous numpy array")
        shape4 = _normalize_shape(shape)
        if int(np.prod(shape4)) != buffer.size:
            raise ValueError(
                f"wrap(): buffer has {buffer.size} elements, shape {shape4} needs "
                f"{int(np.prod(shape4))}"
            )
        return cls._from_flat(buffer.reshape(-1), shape4)
