"""
Kaiming (He) weight initializers.

Implemented variants
--------------------
- ``kaiming``:
    Normal initialization with ``std = sqrt(2 / fan_in)``. Default for
    convolution filters.
- ``kaiming_uniform``:
    Centered uniform initialization ``U(-a/2, a/2)`` with
    ``a = sqrt(2 / fan_in)``. Default for dense weights.
"""

import math

from ._base import WeightInitializer
from ...tensor._random import normal_array, uniform_array
from ...tensor._tensor import Tensor
from ....domain.utils._weight_initialization import compute_fans


@WeightInitializer.register_initializer("kaiming")
def kaiming(tensor: Tensor) -> Tensor:
    """
    Apply Kaiming (He) normal initialization in-place.

        std = sqrt(2 / fan_in)
    """
    fan_in = compute_fans(tensor.shape).fan_in
    std = math.sqrt(2.0 / float(fan_in))
    tensor.copy_from_numpy(normal_array(tensor.size, 0.0, std, dtype=tensor.dtype))
    return tensor


@WeightInitializer.register_initializer("kaiming_uniform")
def kaiming_uniform(tensor: Tensor) -> Tensor:
    """
    Apply centered Kaiming uniform initialization in-place.

        w ~ U(-a/2, a/2),  a = sqrt(2 / fan_in)
    """
    fan_in = compute_fans(tensor.shape).fan_in
    half = 0.5 * math.sqrt(2.0 / float(fan_in))
    tensor.copy_from_numpy(uniform_array(tensor.size, -half, half, dtype=tensor.dtype))
    return tensor
