"""
Memory and layout mixin for `Tensor`.

Covers everything that moves or reinterprets elements without doing
arithmetic on them: numpy export/import, copies, fills, reshapes and
transposes.

`reshape` never reallocates: the returned tensor shares the flat buffer of
the original, so in-place writes through either tensor are visible in both.
Transposes do move elements and therefore always return a new buffer.
"""

from __future__ import annotations

from typing import Sequence, Union

import numpy as np

from ....domain._errors import ShapeMismatchError


def _normalize_shape(shape: Union[int, Sequence[int]]) -> tuple[int, int, int, int]:
    """
    Normalize a 1- to 4-element shape to `(N, C, H, W)` by padding with 1s.

    Raises
    ------
    ValueError
        If the shape is empty, longer than 4, or contains negative entries.
    """
    if isinstance(shape, (int, np.integer)):
        shape = (int(shape),)
    dims = tuple(int(d) for d in shape)
    if not 1 <= len(dims) <= 4:
        raise ValueError(f"Tensor shapes must have 1 to 4 dimensions, got {dims}")
    if any(d < 0 for d in dims):
        raise ValueError(f"Tensor dimensions must be non-negative, got {dims}")
    return dims + (1,) * (4 - len(dims))  # type: ignore[return-value]


class TensorMixinMemory:
    """
    Copy, fill, reshape and transpose operations.
    """

    def to_numpy(self) -> np.ndarray:
        """
        Return a 4-D numpy view over the backing buffer.

        Writes to the returned array are visible in the tensor.
        """
        return self._data.reshape(self._shape)

    def copy(self):
        """Return a deep copy with its own buffer."""
        return type(self)._from_flat(self._data.copy(), self._shape)

    def copy_from(self, other) -> None:
        """
        Overwrite this tensor's elements with those of `other`.

        Raises
        ------
        ShapeMismatchError
            If the shapes differ.
        """
        if other.shape != self._shape:
            raise ShapeMismatchError(
                "copy_from",
                "source shape differs from destination shape",
                expected=self._shape,
                actual=other.shape,
            )
        np.copyto(self._data, other._data)

    def copy_from_numpy(self, array: np.ndarray) -> None:
        """
        Overwrite this tensor's elements from a numpy array of equal size.

        The array is read in C order, so any shape with the same element count
        is accepted.
        """
        arr = np.asarray(array)
        if arr.size != self._data.size:
            raise ShapeMismatchError(
                "copy_from_numpy",
                f"array has {arr.size} elements, tensor has {self._data.size}",
                expected=self._shape,
                actual=arr.shape,
            )
        self._data[:] = arr.reshape(-1)

    def fill(self, value: float):
        """Set every element to `value` in-place and return self."""
        self._data.fill(value)
        return self

    def reshape(self, *shape):
        """
        Return a view with a new shape over the same buffer.

        Accepts either `reshape(n, c, h, w)` or `reshape((n, c, h, w))`;
        shorter shapes are padded with trailing 1s.

        Raises
        ------
        ShapeMismatchError
            If the new element count differs from the current one.
        """
        if len(shape) == 1 and not isinstance(shape[0], (int, np.integer)):
            shape = tuple(shape[0])
        new_shape = _normalize_shape(shape)
        if int(np.prod(new_shape)) != self._data.size:
            raise ShapeMismatchError(
                "reshape",
                f"cannot reshape {self._shape} ({self._data.size} elements) "
                f"to {new_shape}",
                expected=self._shape,
                actual=new_shape,
            )
        return type(self)._from_flat(self._data, new_shape)

    def transpose2d(self):
        """
        Swap rows and columns of the 2-D view `(N, C*H*W)`.

        Returns
        -------
        Tensor
            New tensor of shape `(C*H*W, N, 1, 1)`.
        """
        rows = self._shape[0]
        cols = self._data.size // rows if rows else 0
        flipped = np.ascontiguousarray(self._data.reshape(rows, cols).T)
        return type(self)._from_flat(flipped.reshape(-1), (cols, rows, 1, 1))

    def transpose(self, axes: Sequence[int]):
        """
        Permute the four axes and return a new contiguous tensor.

        Parameters
        ----------
        axes : Sequence[int]
            A permutation of `(0, 1, 2, 3)`.
        """
        axes = tuple(int(a) for a in axes)
        if sorted(axes) != [0, 1, 2, 3]:
            raise ValueError(f"axes must be a permutation of (0, 1, 2, 3), got {axes}")
        moved = np.ascontiguousarray(self.to_numpy().transpose(axes))
        return type(self)._from_flat(moved.reshape(-1), moved.shape)
