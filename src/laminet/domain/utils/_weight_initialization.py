"""
Initializer contract and fan arithmetic.

laminet stores every parameter as a 4-D tensor: dense weights as
`(units, in_features, 1, 1)` and convolution filters as
`(filters, channels, k, k)`. One rule therefore covers both:

    fan_in  = C * H * W
    fan_out = N * H * W

Bias-shaped tensors `(units, 1, 1, 1)` get `fan_in = 1`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Dict, NamedTuple, Sequence

from .._tensor import ITensor

InitFn = Callable[[ITensor], ITensor]


class Fans(NamedTuple):
    fan_in: int
    fan_out: int


def compute_fans(shape: Sequence[int]) -> Fans:
    """
    Return the fan-in and fan-out of a 4-D parameter shape.

    Shorter shapes are right-padded with ones, matching how `Tensor`
    promotes them. Results are clamped to at least 1 so that variance
    formulas never divide by zero.

    Raises
    ------
    ValueError
        If `shape` has more than four dimensions.
    """
    dims = [int(d) for d in shape]
    if len(dims) > 4:
        raise ValueError(f"Parameter shapes are at most 4-D, got {tuple(shape)}")
    n, c, h, w = dims + [1] * (4 - len(dims))
    receptive = h * w
    return Fans(max(1, c * receptive), max(1, n * receptive))


class _WeightInitializer(ABC):
    """
    Contract for a name-addressed initializer.

    A concrete dispatcher is constructed from a strategy name and, when
    called on a parameter tensor, fills it in-place and returns it.
    """

    INITIALIZERS: Dict[str, InitFn] = {}

    @classmethod
    @abstractmethod
    def register_initializer(
        cls, name: str, *, overwrite: bool = False
    ) -> Callable[[InitFn], InitFn]: ...

    @classmethod
    @abstractmethod
    def available(cls) -> tuple[str, ...]: ...

    @abstractmethod
    def __call__(self, tensor: ITensor) -> ITensor: ...
