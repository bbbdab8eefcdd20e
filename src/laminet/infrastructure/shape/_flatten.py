"""
Flatten layer for laminet.

Collapses every non-batch axis: `(N, C, H, W)` -> `(N, C*H*W, 1, 1)`. The
output shares the input buffer (a reshape is a view). Feature-major input
is transposed to batch-major first, and backward transposes the gradient
back so it matches exactly what the predecessor produced.
"""

from __future__ import annotations

from typing import Optional

from ...domain._layout import CHANNEL_MAJOR, OutputFormat
from .._layer import Layer, Shape4
from .._serialization import register_layer
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import TrainingContext


@register_layer()
class Flatten(Layer):
    """
    Reshape every sample into a flat feature vector.
    """

    def _compute_output_shape(self, input_shape: Shape4) -> Shape4:
        n, c, h, w = input_shape
        if min(c, h, w) < 0:
            return (n, -1, 1, 1)
        return (n, c * h * w, 1, 1)

    def _resolve_output_format(self, input_format: OutputFormat) -> OutputFormat:
        return CHANNEL_MAJOR

    def _forward(self, x: Tensor, ctx: Optional[TrainingContext]) -> Tensor:
        xb = self._as_batch_major(x)
        if ctx is not None:
            ctx.saved_meta["shape"] = xb.shape
        n = xb.shape[0]
        return xb.reshape(n, xb.size // n if n else 0, 1, 1)

    def _backward(self, ctx: TrainingContext, grad: Tensor) -> Tensor:
        return self._restore_input_layout(grad.reshape(ctx.saved_meta["shape"]))
