"""
Tensor package: the concrete `Tensor`, seeded randomness, and the training
context used by layers between forward and backward.
"""

from ._random import derive_generator, get_seed, next_stream, set_seed
from ._tensor import Tensor
from ._tensor_context import TrainingContext

__all__ = [
    "Tensor",
    "TrainingContext",
    "derive_generator",
    "get_seed",
    "next_stream",
    "set_seed",
]
