"""
Nearest-neighbour 2-D upsampling for laminet.

Every input element is repeated into a `size x size` block:
`(N, C, H, W)` -> `(N, C, H*size, W*size)`. Backward sums (does not
average) the gradient over each block.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

import numpy as np

from ...domain._layout import CHANNEL_MAJOR, OutputFormat
from .._layer import Layer, Shape4
from .._parallel import parallel_for
from .._serialization import register_layer
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import TrainingContext


@register_layer()
class Upsampling2D(Layer):
    """
    Repeat rows and columns `size` times.

    Parameters
    ----------
    size : int, optional
        Upsampling factor along both spatial axes. Default 2.

    Raises
    ------
    ValueError
        If `size` is not positive.
    """

    def __init__(
        self,
        size: int = 2,
        *,
        input_shape: Optional[Sequence[int]] = None,
        dtype=np.float32,
        name: Optional[str] = None,
    ) -> None:
        if int(size) <= 0:
            raise ValueError(f"size must be positive, got {size}")
        super().__init__(input_shape=input_shape, dtype=dtype, name=name)
        self.size = int(size)

    def _compute_output_shape(self, input_shape: Shape4) -> Shape4:
        n, c, h, w = input_shape
        s = self.size
        return (n, c, h * s if h >= 0 else -1, w * s if w >= 0 else -1)

    def _resolve_output_format(self, input_format: OutputFormat) -> OutputFormat:
        return CHANNEL_MAJOR

    def _forward(self, x: Tensor, ctx: Optional[TrainingContext]) -> Tensor:
        arr = self._as_array(self._as_batch_major(x))
        n, c, h, w = arr.shape
        s = self.size
        y = np.empty((n, c, h * s, w * s), dtype=arr.dtype)

        def _image(i: int) -> None:
            y[i] = np.repeat(np.repeat(arr[i], s, axis=1), s, axis=2)

        parallel_for(n, _image)
        if ctx is not None:
            ctx.saved_meta["shape"] = arr.shape
        return self._tensor(y)

    def _backward(self, ctx: TrainingContext, grad: Tensor) -> Tensor:
        n, c, h, w = ctx.saved_meta["shape"]
        s = self.size
        g = self._as_array(grad)
        dx = np.empty((n, c, h, w), dtype=g.dtype)

        def _image(i: int) -> None:
            dx[i] = g[i].reshape(c, h, s, w, s).sum(axis=(2, 4))

        parallel_for(n, _image)
        return self._restore_input_layout(self._tensor(dx))

    def get_config(self) -> Dict[str, Any]:
        cfg = super().get_config()
        cfg["size"] = self.size
        return cfg
