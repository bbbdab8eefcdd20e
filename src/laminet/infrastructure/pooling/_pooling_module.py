"""
Pooling layers for laminet.

- `MaxPool2D`: sliding-window maximum with "valid" windows. Backward
  re-derives the arg-max from the cached input (first strictly greater
  value in row-major scan order wins) and adds the gradient into it.
- `GlobalAveragePooling2D`: per-(image, channel) spatial average, reducing
  `(N, C, H, W)` to `(N, C, 1, 1)`.

Both layers are stateless apart from the cached input; the numerical work
lives in `ops.pool2d_cpu`.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

import numpy as np

from ...domain._layout import CHANNEL_MAJOR, OutputFormat
from .._layer import Layer, Shape4
from .._serialization import register_layer
from ..ops.pool2d_cpu import (
    global_avgpool2d_backward_cpu,
    global_avgpool2d_forward_cpu,
    maxpool2d_backward_cpu,
    maxpool2d_forward_cpu,
    pool_output_size,
)
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import TrainingContext


@register_layer()
class MaxPool2D(Layer):
    """
    2-D max pooling.

    Parameters
    ----------
    pool_size : int
        Side length of the square window.
    stride : int | None, optional
        Window stride. Defaults to `pool_size` (non-overlapping windows).

    Raises
    ------
    ValueError
        If `pool_size` or `stride` is not positive.
    """

    def __init__(
        self,
        pool_size: int,
        stride: Optional[int] = None,
        *,
        input_shape: Optional[Sequence[int]] = None,
        dtype=np.float32,
        name: Optional[str] = None,
    ) -> None:
        stride = pool_size if stride is None else stride
        if int(pool_size) <= 0 or int(stride) <= 0:
            raise ValueError(
                f"pool_size and stride must be positive, got {pool_size}, {stride}"
            )
        super().__init__(input_shape=input_shape, dtype=dtype, name=name)
        self.pool_size = int(pool_size)
        self.stride = int(stride)

    def _compute_output_shape(self, input_shape: Shape4) -> Shape4:
        n, c, h, w = input_shape
        return (
            n,
            c,
            pool_output_size(h, self.pool_size, self.stride),
            pool_output_size(w, self.pool_size, self.stride),
        )

    def _resolve_output_format(self, input_format: OutputFormat) -> OutputFormat:
        return CHANNEL_MAJOR

    def _forward(self, x: Tensor, ctx: Optional[TrainingContext]) -> Tensor:
        arr = self._as_array(self._as_batch_major(x))
        if ctx is not None:
            ctx.saved_meta["x"] = arr
        return self._tensor(maxpool2d_forward_cpu(arr, self.pool_size, self.stride))

    def _backward(self, ctx: TrainingContext, grad: Tensor) -> Tensor:
        dx = maxpool2d_backward_cpu(
            ctx.saved_meta["x"], self._as_array(grad), self.pool_size, self.stride
        )
        return self._restore_input_layout(self._tensor(dx))

    def get_config(self) -> Dict[str, Any]:
        cfg = super().get_config()
        cfg.update({"pool_size": self.pool_size, "stride": self.stride})
        return cfg


@register_layer()
class GlobalAveragePooling2D(Layer):
    """
    Average over all spatial positions of every channel.
    """

    def _compute_output_shape(self, input_shape: Shape4) -> Shape4:
        return (input_shape[0], input_shape[1], 1, 1)

    def _resolve_output_format(self, input_format: OutputFormat) -> OutputFormat:
        return CHANNEL_MAJOR

    def _forward(self, x: Tensor, ctx: Optional[TrainingContext]) -> Tensor:
        arr = self._as_array(self._as_batch_major(x))
        if ctx is not None:
            ctx.saved_meta["in_hw"] = arr.shape[2:]
        return self._tensor(global_avgpool2d_forward_cpu(arr))

    def _backward(self, ctx: TrainingContext, grad: Tensor) -> Tensor:
        dx = global_avgpool2d_backward_cpu(self._as_array(grad), ctx.saved_meta["in_hw"])
        return self._restore_input_layout(self._tensor(dx))
