from ._conv2d_module import Conv2D

__all__ = [
    Conv2D.__name__,
]
