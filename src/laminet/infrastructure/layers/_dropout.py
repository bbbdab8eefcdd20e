"""
Dropout regularization layer for laminet.

This module implements inverted dropout. During training every forward
call draws a fresh Bernoulli keep-mask, zeroes the dropped activations and
rescales the survivors by `1 / (1 - rate)` so that the expected activation
is unchanged. During inference the layer returns a copy of its input.

Mask shape
----------
- Spatial input (convolutional feature maps, tagged `spatial` by the
  predecessor): one keep decision per `(image, channel)`, broadcast over
  `H x W` ("spatial dropout").
- Anything else: one keep decision per element of the stored buffer.

Reproducibility
---------------
Masks are drawn in chunks of `MASK_CHUNK` decisions. Chunk `i` of a mask
uses its own generator derived from the process-wide seed, the mask's
stream index and `i`, so masks are identical for a given seed no matter how
many threads draw them.
"""

from __future__ import annotations

import warnings
from typing import Any, Dict, Optional, Sequence

import numpy as np

from .._layer import Layer
from .._serialization import register_layer
from ..tensor._random import uniform_array
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import TrainingContext

MASK_CHUNK = 1024


@register_layer()
class Dropout(Layer):
    """
    Inverted dropout.

    Parameters
    ----------
    rate : float
        Probability of dropping an element (or channel). Must satisfy
        `0 <= rate < 1`.

    Raises
    ------
    ValueError
        If `rate` is outside `[0, 1)`.
    """

    def __init__(
        self,
        rate: float,
        *,
        input_shape: Optional[Sequence[int]] = None,
        dtype=np.float32,
        name: Optional[str] = None,
    ) -> None:
        if not 0.0 <= float(rate) < 1.0:
            raise ValueError(f"Dropout rate must be in [0, 1), got {rate}")
        if float(rate) == 0.0:
            warnings.warn("Dropout with rate 0 is an identity layer", stacklevel=2)
        super().__init__(input_shape=input_shape, dtype=dtype, name=name)
        self.rate = float(rate)

    def _draw_mask(self, shape: tuple[int, int, int, int]) -> np.ndarray:
        n, c, h, w = shape
        if self._input_format.spatial:
            mask_shape = (n, c, 1, 1)
        else:
            mask_shape = shape
        total = int(np.prod(mask_shape))
        keep = uniform_array(total, dtype=np.float64, chunk=MASK_CHUNK) >= self.rate
        scale = 1.0 / (1.0 - self.rate)
        return (keep * scale).astype(self.dtype).reshape(mask_shape)

    def _forward(self, x: Tensor, ctx: Optional[TrainingContext]) -> Tensor:
        arr = self._as_array(x)
        if ctx is None:
            return self._tensor(arr.copy())

        mask = self._draw_mask(arr.shape)
        ctx.saved_meta["mask"] = mask
        return self._tensor(arr * mask)

    def _backward(self, ctx: TrainingContext, grad: Tensor) -> Tensor:
        return self._tensor(self._as_array(grad) * ctx.saved_meta["mask"])

    def get_config(self) -> Dict[str, Any]:
        cfg = super().get_config()
        cfg["rate"] = self.rate
        return cfg
