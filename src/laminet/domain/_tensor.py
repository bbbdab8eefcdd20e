"""
Tensor interface definitions.

This module defines the domain-level tensor contract used by layers. The
interface is expressed as a `typing.Protocol` so that layers and kernels
depend on the behaviour of a tensor rather than on a concrete class.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, Union, runtime_checkable

import numpy as np


Number = Union[int, float]


@runtime_checkable
class ITensor(Protocol):
    """
    Domain-level 4-D tensor interface.

    A tensor owns one contiguous numeric buffer plus a shape
    `(N, C, H, W)`. The element at `(n, c, h, w)` lives at flat index
    `((n*C + c)*H + h)*W + w`.

    Notes
    -----
    - Any object implementing these members is considered a tensor.
    - `reshape` returns a view over the same buffer.
    """

    @property
    def shape(self) -> tuple[int, int, int, int]:
        """Return the 4-D shape `(N, C, H, W)`."""
        ...

    @property
    def dtype(self) -> Any:
        """Return the numpy dtype of the backing buffer."""
        ...

    @property
    def size(self) -> int:
        """Return the total number of elements."""
        ...

    def to_numpy(self) -> np.ndarray:
        """Return a 4-D numpy view over the backing buffer."""
        ...

    def reshape(self, *shape: int) -> "ITensor":
        """Return a view with a new shape and the same element count."""
        ...

    def matmul(self, other: "ITensor", scale: bool = False) -> "ITensor":
        """Multiply two tensors viewed as 2-D matrices."""
        ...

    def transpose2d(self) -> "ITensor":
        """Swap the row (batch) and column (feature) axes of the 2-D view."""
        ...

    def sum(self, axis: Optional[int] = None) -> "ITensor":
        """Sum over one axis (kept as size 1) or over all elements."""
        ...

    def l2_norm(self) -> float:
        """Return the Euclidean norm of all elements."""
        ...
