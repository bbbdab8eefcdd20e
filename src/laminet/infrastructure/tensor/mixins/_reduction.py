"""
Reduction mixin for `Tensor`.

Axis reductions keep the reduced axis with size 1 so results stay 4-D and
can be combined with other tensors without reshaping. Whole-tensor
reductions and norms return Python floats and accumulate in float64.
"""

from __future__ import annotations

from typing import Optional, Union

import numpy as np


class TensorMixinReduction:
    """
    Sum, mean, and norm reductions.
    """

    def sum(self, axis: Optional[int] = None) -> Union[float, "TensorMixinReduction"]:
        """
        Sum elements.

        Parameters
        ----------
        axis : int | None
            Axis to reduce (kept with size 1). `None` sums every element and
            returns a float.
        """
        if axis is None:
            return float(self._data.sum(dtype=np.float64))
        reduced = self.to_numpy().sum(axis=axis, keepdims=True)
        return type(self)._from_flat(
            np.ascontiguousarray(reduced, dtype=self._data.dtype).reshape(-1),
            reduced.shape,
        )

    def mean(self, axis: Optional[int] = None) -> Union[float, "TensorMixinReduction"]:
        """Mean of the elements; same axis semantics as `sum`."""
        if axis is None:
            return float(self._data.mean(dtype=np.float64)) if self._data.size else 0.0
        reduced = self.to_numpy().mean(axis=axis, keepdims=True)
        return type(self)._from_flat(
            np.ascontiguousarray(reduced, dtype=self._data.dtype).reshape(-1),
            reduced.shape,
        )

    def l2_norm(self) -> float:
        """Euclidean (Frobenius) norm of all elements."""
        flat = self._data.astype(np.float64, copy=False)
        return float(np.sqrt(np.dot(flat, flat)))

    def l1_norm(self) -> float:
        """Sum of absolute values."""
        return float(np.abs(self._data).sum(dtype=np.float64))

    def abs_max(self) -> float:
        """Largest absolute value (0.0 for empty tensors)."""
        return float(np.abs(self._data).max()) if self._data.size else 0.0

    def abs_mean(self) -> float:
        """Mean absolute value (0.0 for empty tensors)."""
        return float(np.abs(self._data).mean(dtype=np.float64)) if self._data.size else 0.0
