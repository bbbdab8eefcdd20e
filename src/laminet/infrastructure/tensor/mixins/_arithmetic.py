"""
Arithmetic mixin for `Tensor`.

Elementwise operators come in two flavours:

- copying: `a + b`, `a - b`, `a * b`, `a / b` return a new tensor;
- in-place: `a.add_(b)`, `a.sub_(b)`, `a.mul_(b)`, `a.div_(b)` (and the
  augmented operators `+=`, `-=`, `*=`, `/=`) write into `a`'s buffer.

The right-hand side is either a scalar or a tensor of exactly the same shape.
No broadcasting is performed: a shape mismatch is a structural bug and
raises `ShapeMismatchError`.

`matmul` treats both operands as 2-D matrices obtained by flattening every
axis except the first.
"""

from __future__ import annotations

import math
from typing import Union

import numpy as np

from ....domain._errors import ShapeMismatchError


class TensorMixinArithmetic:
    """
    Elementwise arithmetic, scaling, clipping and matrix multiplication.
    """

    def _operand(self, other, op: str) -> Union[np.ndarray, float]:
        if isinstance(other, TensorMixinArithmetic):
            if other.shape != self._shape:
                raise ShapeMismatchError(
                    op,
                    "operands must have identical shapes",
                    expected=self._shape,
                    actual=other.shape,
                )
            return other._data
        return other

    def __add__(self, other):
        return type(self)._from_flat(self._data + self._operand(other, "add"), self._shape)

    def __sub__(self, other):
        return type(self)._from_flat(self._data - self._operand(other, "sub"), self._shape)

    def __mul__(self, other):
        return type(self)._from_flat(self._data * self._operand(other, "mul"), self._shape)

    def __truediv__(self, other):
        return type(self)._from_flat(self._data / self._operand(other, "div"), self._shape)

    def __radd__(self, other):
        return self.__add__(other)

    def __rmul__(self, other):
        return self.__mul__(other)

    def __rsub__(self, other):
        return type(self)._from_flat(self._operand(other, "sub") - self._data, self._shape)

    def __neg__(self):
        return type(self)._from_flat(-self._data, self._shape)

    def add_(self, other):
        """In-place `self += other`; returns self."""
        np.add(self._data, self._operand(other, "add_"), out=self._data, casting="unsafe")
        return self

    def sub_(self, other):
        """In-place `self -= other`; returns self."""
        np.subtract(
            self._data, self._operand(other, "sub_"), out=self._data, casting="unsafe"
        )
        return self

    def mul_(self, other):
        """In-place `self *= other`; returns self."""
        np.multiply(
            self._data, self._operand(other, "mul_"), out=self._data, casting="unsafe"
        )
        return self

    def div_(self, other):
        """In-place `self /= other`; returns self."""
        np.divide(
            self._data, self._operand(other, "div_"), out=self._data, casting="unsafe"
        )
        return self

    __iadd__ = add_
    __isub__ = sub_
    __imul__ = mul_
    __itruediv__ = div_

    def scale_(self, factor: float):
        """Multiply every element by `factor` in-place; returns self."""
        self._data *= factor
        return self

    def clip_(self, low: float, high: float):
        """Clamp every element to `[low, high]` in-place; returns self."""
        np.clip(self._data, low, high, out=self._data)
        return self

    def matmul(self, other, scale: bool = False):
        """
        Matrix-multiply two tensors viewed as 2-D.

        `self` is viewed as `(N, C*H*W)` and `other` as
        `(other.N, other.C*other.H*other.W)`.

        Parameters
        ----------
        other : Tensor
            Right-hand operand.
        scale : bool, optional
            If True, multiply the product by `1 / sqrt(k)` where `k` is the
            inner dimension. Keeps the output variance independent of `k`.

        Returns
        -------
        Tensor
            Tensor of shape `(self.N, other.C, other.H, other.W)`.

        Raises
        ------
        ShapeMismatchError
            If `self.C*self.H*self.W != other.N`.
        """
        rows = self._shape[0]
        inner = self._data.size // rows if rows else 0
        other_rows = other.shape[0]
        if inner != other_rows:
            raise ShapeMismatchError(
                "matmul",
                f"inner dimensions differ ({inner} vs {other_rows}) for "
                f"{self._shape} x {other.shape}",
                expected=(inner,),
                actual=(other_rows,),
            )
        cols = other.size // other_rows if other_rows else 0

        product = self._data.reshape(rows, inner) @ other._data.reshape(other_rows, cols)
        if scale and inner > 0:
            product *= 1.0 / math.sqrt(inner)

        out_shape = (rows,) + tuple(other.shape[1:])
        return type(self)._from_flat(
            np.ascontiguousarray(product, dtype=self._data.dtype).reshape(-1), out_shape
        )
