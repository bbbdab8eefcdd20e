"""
Batch normalization layer for laminet.

`BatchNorm` normalizes every channel over the batch and spatial axes
`(N, H, W)` of an `(N, C, H, W)` input. Feature-major input (the output of
a Dense layer) is transposed to `(N, features, 1, 1)` first, so the
features act as channels; the layer then emits channel-major output.

Running statistics
------------------
During training the layer keeps exponential moving averages

    running = momentum * running + (1 - momentum) * batch_statistic

starting from mean 0 and variance 1. Inference normalizes with the running
statistics and never updates them.

Gradient policy
---------------
Gradients are overwritten on every backward call. The gamma gradient is
multiplied by `gamma_grad_scale` (default `1 / (N * H * W)`) and the input
gradient is clamped to `[-input_clip, input_clip]` to keep updates stable.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from ...domain._layout import CHANNEL_MAJOR, OutputFormat
from .._layer import Shape4
from .._parallel import parallel_for
from .._serialization import register_layer
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import TrainingContext
from ._normalization import NormalizationLayer, normalization_input_grad


@register_layer()
class BatchNorm(NormalizationLayer):
    """
    Per-channel batch normalization with running statistics.

    Parameters
    ----------
    momentum : float, optional
        Weight of the previous running statistic. Default 0.99.
    epsilon : float, optional
        Variance floor. Default 1e-5.
    input_clip : float | None, optional
        Absolute bound applied to the input gradient. Default 1.0; `None`
        disables clamping.
    gamma_grad_scale : float | None, optional
        Factor applied to the gamma gradient. `None` (default) uses
        `1 / (N * H * W)` of the current batch.
    gamma_init, beta_init : float, optional
        Initial fill of gamma and beta. Defaults 1.0 and 0.0.

    Raises
    ------
    ValueError
        If `momentum` is outside `[0, 1]`.
    """

    def __init__(
        self,
        momentum: float = 0.99,
        epsilon: float = 1e-5,
        *,
        input_clip: Optional[float] = 1.0,
        gamma_grad_scale: Optional[float] = None,
        gamma_init: float = 1.0,
        beta_init: float = 0.0,
        input_shape: Optional[Sequence[int]] = None,
        dtype=np.float32,
        name: Optional[str] = None,
    ) -> None:
        if not 0.0 <= float(momentum) <= 1.0:
            raise ValueError(f"momentum must be in [0, 1], got {momentum}")
        super().__init__(
            epsilon,
            gamma_init=gamma_init,
            beta_init=beta_init,
            input_shape=input_shape,
            dtype=dtype,
            name=name,
        )
        self.momentum = float(momentum)
        self.input_clip = input_clip
        self.gamma_grad_scale = gamma_grad_scale
        self.running_mean: Optional[Tensor] = None
        self.running_var: Optional[Tensor] = None

    def _resolve_output_format(self, input_format: OutputFormat) -> OutputFormat:
        if input_format.is_feature_major:
            return CHANNEL_MAJOR
        return input_format

    def _build(self, input_shape: Shape4) -> None:
        channels = input_shape[1]
        self._build_affine(channels)
        self.running_mean = Tensor.zeros((channels,), dtype=self.dtype)
        self.running_var = Tensor.ones((channels,), dtype=self.dtype)

    def running_statistics(self) -> Tuple[Tensor, Tensor]:
        """Return `(running_mean, running_var)` by reference."""
        return self.running_mean, self.running_var

    def _forward(self, x: Tensor, ctx: Optional[TrainingContext]) -> Tensor:
        arr = self._as_array(self._as_batch_major(x))
        channels = arr.shape[1]
        if channels != self.num_features:
            raise ValueError(
                f"{self.name}: expected {self.num_features} channels, got {channels}"
            )
        gamma, beta = self.gamma.data, self.beta.data
        y = np.empty_like(arr)

        if ctx is None:
            r_mean, r_var = self.running_mean.data, self.running_var.data

            def _infer(c: int) -> None:
                inv_std = 1.0 / np.sqrt(r_var[c] + self.epsilon)
                y[:, c] = gamma[c] * (arr[:, c] - r_mean[c]) * inv_std + beta[c]

            parallel_for(channels, _infer)
            return self._tensor(y)

        x_hat = np.empty_like(arr)
        mean = np.empty(channels, dtype=arr.dtype)
        var = np.empty(channels, dtype=arr.dtype)
        inv_std = np.empty(channels, dtype=arr.dtype)

        def _train(c: int) -> None:
            xc = arr[:, c]
            mean[c] = xc.mean()
            var[c] = xc.var()
            inv_std[c] = 1.0 / np.sqrt(var[c] + self.epsilon)
            x_hat[:, c] = (xc - mean[c]) * inv_std[c]
            y[:, c] = gamma[c] * x_hat[:, c] + beta[c]

        parallel_for(channels, _train)

        m = self.momentum
        self.running_mean.copy_from_numpy(m * self.running_mean.data + (1.0 - m) * mean)
        self.running_var.copy_from_numpy(m * self.running_var.data + (1.0 - m) * var)

        ctx.saved_meta["x_hat"] = x_hat
        ctx.saved_meta["inv_std"] = inv_std
        return self._tensor(y)

    def _backward(self, ctx: TrainingContext, grad: Tensor) -> Tensor:
        g = self._as_array(grad)
        x_hat = ctx.saved_meta["x_hat"]
        inv_std = ctx.saved_meta["inv_std"]
        n, channels, h, w = x_hat.shape
        gamma = self.gamma.data

        d_gamma = np.empty(channels, dtype=x_hat.dtype)
        d_beta = np.empty(channels, dtype=x_hat.dtype)
        dx = np.empty_like(x_hat)

        def _channel(c: int) -> None:
            gc = g[:, c]
            xh = x_hat[:, c]
            d_gamma[c] = (gc * xh).sum()
            d_beta[c] = gc.sum()
            dx[:, c] = normalization_input_grad(gc * gamma[c], xh, inv_std[c], (0, 1, 2))

        parallel_for(channels, _channel)

        scale = self.gamma_grad_scale
        if scale is None:
            scale = 1.0 / float(n * h * w)
        self._gradients["gamma"].copy_from_numpy(d_gamma * scale)
        self._gradients["beta"].copy_from_numpy(d_beta)

        if self.input_clip is not None:
            np.clip(dx, -self.input_clip, self.input_clip, out=dx)
        return self._restore_input_layout(self._tensor(dx))

    def get_config(self) -> Dict[str, Any]:
        cfg = super().get_config()
        cfg.update(
            {
                "momentum": self.momentum,
                "input_clip": self.input_clip,
                "gamma_grad_scale": self.gamma_grad_scale,
            }
        )
        return cfg
