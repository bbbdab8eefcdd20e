"""
Tensor mixins.

Each mixin contributes one family of operations to `Tensor`. They rely on
two attributes provided by the concrete class: `_data` (flat numpy buffer)
and `_shape` (4-tuple), plus the `_from_flat` constructor.
"""

from ._arithmetic import TensorMixinArithmetic
from ._factory import TensorMixinFactory
from ._memory import TensorMixinMemory
from ._reduction import TensorMixinReduction

__all__ = [
    TensorMixinArithmetic.__name__,
    TensorMixinFactory.__name__,
    TensorMixinMemory.__name__,
    TensorMixinReduction.__name__,
]
