"""
Constant initializers (``zeros``, ``ones``).

Used for biases and for the gamma/beta vectors of normalization layers.
"""

from ._base import WeightInitializer
from ...tensor._tensor import Tensor


@WeightInitializer.register_initializer("zeros")
def zeros(tensor: Tensor) -> Tensor:
    """Fill `tensor` with zeros in-place."""
    return tensor.fill(0.0)


@WeightInitializer.register_initializer("ones")
def ones(tensor: Tensor) -> Tensor:
    """Fill `tensor` with ones in-place."""
    return tensor.fill(1.0)
