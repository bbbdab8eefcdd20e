"""
Elementwise function interface.

An `ElementwiseFunction` bundles a pointwise activation with its closed-form
derivative. Both methods operate on numpy slices, so a layer can split a
buffer into chunks and evaluate them on different threads.

Each function declares which forward value its derivative is expressed in:
the input (`SAVES = "input"`) or the output (`SAVES = "output"`). The layer
caches only that value during a training forward.
"""

from abc import ABC, abstractmethod
from typing import ClassVar, Literal

import numpy as np


class ElementwiseFunction(ABC):
    """
    Abstract base class for pointwise activations.

    Notes
    -----
    - Function objects hold hyperparameters only (e.g. a LeakyReLU slope)
      and never per-call state, so one instance can serve concurrent chunks.
    - `backward(saved, grad)` receives the slice of the cached value named
      by `SAVES` and the matching slice of the incoming gradient.
    """

    SAVES: ClassVar[Literal["input", "output"]] = "output"

    @abstractmethod
    def forward(self, x: np.ndarray) -> np.ndarray:
        """Evaluate the activation on a slice."""
        raise NotImplementedError

    @abstractmethod
    def backward(self, saved: np.ndarray, grad: np.ndarray) -> np.ndarray:
        """Multiply `grad` by the derivative evaluated from `saved`."""
        raise NotImplementedError
