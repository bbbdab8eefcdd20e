"""
Shape-altering layers without trainable state.
"""

from ._flatten import Flatten
from ._reshape import Reshape
from ._upsampling import Upsampling2D

__all__ = [
    Flatten.__name__,
    Reshape.__name__,
    Upsampling2D.__name__,
]
