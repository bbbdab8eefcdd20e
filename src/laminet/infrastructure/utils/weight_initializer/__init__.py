"""
Weight initialization public API.

Importing this package registers the built-in strategies (``kaiming``,
``kaiming_uniform``, ``xavier``, ``xavier_uniform``, ``zeros``, ``ones``)
with `WeightInitializer`.
"""

from ._constant import *
from ._kaiming import *
from ._xavier import *
from ._base import WeightInitializer

__all__ = [
    WeightInitializer.__name__,
]
