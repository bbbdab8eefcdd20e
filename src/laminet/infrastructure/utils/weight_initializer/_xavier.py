"""
Xavier/Glorot weight initializers.

Implemented variants
--------------------
- ``xavier``:
    Normal initialization with ``std = sqrt(2 / (fan_in + fan_out))``.
- ``xavier_uniform``:
    ``U(-sqrt(6/(fan_in+fan_out)), +sqrt(6/(fan_in+fan_out)))``.

Both are suited to tanh/sigmoid networks; they are selected through the
``init`` argument of Dense and Conv2D.
"""

import math

from ._base import WeightInitializer
from ...tensor._random import normal_array, uniform_array
from ...tensor._tensor import Tensor
from ....domain.utils._weight_initialization import compute_fans


@WeightInitializer.register_initializer("xavier")
def xavier(tensor: Tensor) -> Tensor:
    """
    Apply Xavier (Glorot) normal initialization in-place.

        std = sqrt(2 / (fan_in + fan_out))
    """
    fan_in, fan_out = compute_fans(tensor.shape)
    std = math.sqrt(2.0 / float(max(1, fan_in + fan_out)))
    tensor.copy_from_numpy(normal_array(tensor.size, 0.0, std, dtype=tensor.dtype))
    return tensor


@WeightInitializer.register_initializer("xavier_uniform")
def xavier_uniform(tensor: Tensor) -> Tensor:
    """
    Apply Xavier (Glorot) uniform initialization in-place.

        limit = sqrt(6 / (fan_in + fan_out))
    """
    fan_in, fan_out = compute_fans(tensor.shape)
    limit = math.sqrt(6.0 / float(max(1, fan_in + fan_out)))
    tensor.copy_from_numpy(uniform_array(tensor.size, -limit, limit, dtype=tensor.dtype))
    return tensor
