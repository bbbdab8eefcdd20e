"""
Conv2D layer for laminet.

`Conv2D` owns a bank of square filters `(F, C, K, K)` and per-filter biases
and delegates the numerical work to the CPU kernels in `ops.conv2d_cpu`.

Padding modes
-------------
- "valid": no padding, `out = (in - K) // stride + 1`.
- "same": `out = ceil(in / stride)`; the required total padding
  `max(0, (out - 1) * stride + K - in)` is split with the smaller half on
  the top/left and the remainder on the bottom/right.

Gradient policy
---------------
Gradients are overwritten on every backward call. The filter, bias and
input gradients are each clipped to their own L2 ceiling; the input ceiling
is larger than the parameter ceilings.

Example
-------
>>> conv = Conv2D(16, 3, padding="same", input_shape=(3, 32, 32))
>>> conv.build(0)
>>> y = conv.forward(x, training=True)
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

import numpy as np

from ...domain._layout import SPATIAL, OutputFormat
from .._layer import Layer, Shape4
from .._serialization import register_layer
from ..ops.clipping import clip_by_l2_norm
from ..ops.conv2d_cpu import (
    conv2d_backward_bias_cpu,
    conv2d_backward_filter_cpu,
    conv2d_backward_input_cpu,
    conv2d_forward_cpu,
    conv_output_size,
    pad_input,
    same_padding,
)
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import TrainingContext

PADDING_MODES = ("valid", "same")


@register_layer()
class Conv2D(Layer):
    """
    2-D convolution over `(N, C, H, W)` inputs.

    Parameters
    ----------
    filters : int
        Number of output channels.
    kernel_size : int
        Side length of the square filters.
    stride : int, optional
        Stride along both spatial axes. Default 1.
    padding : str, optional
        "valid" (default) or "same".
    use_bias : bool, optional
        Whether to add a per-filter bias. Default True.
    filter_clip_norm, bias_clip_norm, input_clip_norm : float | None
        L2 ceilings for the filter, bias and input gradients
        (defaults 1.0, 1.0 and 5.0). `None` disables a ceiling.
    init : str, optional
        Registered initializer name for the filters. Default "kaiming".
    input_shape : Sequence[int] | None
        `(C, H, W)` for the first layer of a chain.

    Raises
    ------
    ValueError
        For an unsupported padding mode, non-positive sizes, or an
        `input_shape` that is not 3-dimensional.
    """

    expected_input_rank = 3

    def __init__(
        self,
        filters: int,
        kernel_size: int,
        stride: int = 1,
        padding: str = "valid",
        *,
        use_bias: bool = True,
        filter_clip_norm: Optional[float] = 1.0,
        bias_clip_norm: Optional[float] = 1.0,
        input_clip_norm: Optional[float] = 5.0,
        init: str = "kaiming",
        input_shape: Optional[Sequence[int]] = None,
        dtype=np.float32,
        name: Optional[str] = None,
    ) -> None:
        padding = str(padding).lower()
        if padding not in PADDING_MODES:
            raise ValueError(
                f"Unsupported padding mode {padding!r}; expected one of {PADDING_MODES}"
            )
        if int(filters) <= 0 or int(kernel_size) <= 0 or int(stride) <= 0:
            raise ValueError(
                "filters, kernel_size and stride must be positive, got "
                f"{filters}, {kernel_size}, {stride}"
            )
        super().__init__(input_shape=input_shape, dtype=dtype, name=name)
        self.filters = int(filters)
        self.kernel_size = int(kernel_size)
        self.stride = int(stride)
        self.padding = padding
        self.use_bias = bool(use_bias)
        self.filter_clip_norm = filter_clip_norm
        self.bias_clip_norm = bias_clip_norm
        self.input_clip_norm = input_clip_norm
        self.init = init

        self.weights: Optional[Tensor] = None
        self.biases: Optional[Tensor] = None
        self._pads = (0, 0, 0, 0)

    def _compute_output_shape(self, input_shape: Shape4) -> Shape4:
        _, _, h, w = input_shape
        return (
            input_shape[0],
            self.filters,
            conv_output_size(h, self.kernel_size, self.stride, self.padding),
            conv_output_size(w, self.kernel_size, self.stride, self.padding),
        )

    def _resolve_output_format(self, input_format: OutputFormat) -> OutputFormat:
        return SPATIAL

    def _build(self, input_shape: Shape4) -> None:
        _, channels, h, w = input_shape
        if self.padding == "same":
            top, bottom = same_padding(h, self.kernel_size, self.stride)
            left, right = same_padding(w, self.kernel_size, self.stride)
            self._pads = (top, bottom, left, right)

        k = self.kernel_size
        self.weights = self.register_parameter(
            "weights", self._new_weights((self.filters, channels, k, k), self.init)
        )
        if self.use_bias:
            self.biases = self.register_parameter(
                "biases", Tensor.zeros((self.filters,), dtype=self.dtype)
            )

    def _bias_vector(self) -> np.ndarray:
        if self.biases is None:
            return np.zeros(self.filters, dtype=self.dtype)
        return self.biases.data

    def _forward(self, x: Tensor, ctx: Optional[TrainingContext]) -> Tensor:
        x = self._as_batch_major(x)
        arr = self._as_array(x)
        if arr.shape[1:] != tuple(self._input_shape[1:]):
            raise ValueError(
                f"{self.name}: expected input (N, {', '.join(map(str, self._input_shape[1:]))}), "
                f"got {arr.shape}"
            )
        x_pad = pad_input(arr, self._pads)
        _, _, h_out, w_out = self._output_shape
        y = conv2d_forward_cpu(
            x_pad, self.weights.to_numpy(), self._bias_vector(), self.stride, (h_out, w_out)
        )
        if ctx is not None:
            ctx.saved_meta["x_pad"] = x_pad
            ctx.saved_meta["in_hw"] = arr.shape[2:]
        return self._tensor(y)

    def _backward(self, ctx: TrainingContext, grad: Tensor) -> Tensor:
        g = np.ascontiguousarray(self._as_array(grad))
        x_pad = ctx.saved_meta["x_pad"]
        top, _, left, _ = self._pads

        dw = self._gradients["weights"]
        dw.copy_from_numpy(
            conv2d_backward_filter_cpu(x_pad, g, self.kernel_size, self.stride)
        )
        clip_by_l2_norm(dw, self.filter_clip_norm)

        if self.use_bias:
            db = self._gradients["biases"]
            db.copy_from_numpy(conv2d_backward_bias_cpu(g))
            clip_by_l2_norm(db, self.bias_clip_norm)

        dx = self._tensor(
            conv2d_backward_input_cpu(
                g, self.weights.to_numpy(), ctx.saved_meta["in_hw"], self.stride, top, left
            )
        )
        clip_by_l2_norm(dx, self.input_clip_norm)
        return self._restore_input_layout(dx)

    def get_config(self) -> Dict[str, Any]:
        cfg = super().get_config()
        cfg.update(
            {
                "filters": self.filters,
                "kernel_size": self.kernel_size,
                "stride": self.stride,
                "padding": self.padding,
                "use_bias": self.use_bias,
                "filter_clip_norm": self.filter_clip_norm,
                "bias_clip_norm": self.bias_clip_norm,
                "input_clip_norm": self.input_clip_norm,
                "init": self.init,
            }
        )
        return cfg
