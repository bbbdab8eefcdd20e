"""
Shared bookkeeping for normalization layers.

Both normalization variants own two trainable vectors sized to the
normalized axis:

- `gamma` (scale, filled with `gamma_init`, ones by default)
- `beta` (shift, filled with `beta_init`, zeros by default)

and normalize with `x_hat = (x - mean) / sqrt(var + epsilon)`,
`y = gamma * x_hat + beta`. They differ only in the axes the statistics are
aggregated over (see `BatchNorm` and `LayerNorm`).

The backward pass follows the standard decomposition. With
`dx_hat = dy * gamma` and `M` the number of aggregated elements:

    dx = inv_std / M * (M * dx_hat - sum(dx_hat) - x_hat * sum(dx_hat * x_hat))

where the sums run over the aggregated axes.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence, Tuple

import numpy as np

from .._layer import Layer
from ..tensor._tensor import Tensor


def normalization_input_grad(
    dx_hat: np.ndarray, x_hat: np.ndarray, inv_std: np.ndarray, axes: Tuple[int, ...]
) -> np.ndarray:
    """
    Gradient with respect to the normalization input.

    Parameters
    ----------
    dx_hat : np.ndarray
        `dy * gamma`, same shape as `x_hat`.
    x_hat : np.ndarray
        Normalized forward values.
    inv_std : np.ndarray
        `1 / sqrt(var + epsilon)`, broadcastable against `x_hat`.
    axes : tuple[int, ...]
        Axes the statistics were aggregated over.
    """
    m = 1
    for a in axes:
        m *= x_hat.shape[a]
    sum_dx_hat = dx_hat.sum(axis=axes, keepdims=True)
    sum_dx_hat_x_hat = (dx_hat * x_hat).sum(axis=axes, keepdims=True)
    return (inv_std / m) * (m * dx_hat - sum_dx_hat - x_hat * sum_dx_hat_x_hat)


class NormalizationLayer(Layer):
    """
    Base class for normalization layers with learnable `gamma` / `beta`.

    Parameters
    ----------
    epsilon : float
        Variance floor added before the square root. Default 1e-5.
    gamma_init : float
        Initial value of every gamma entry. Default 1.0.
    beta_init : float
        Initial value of every beta entry. Default 0.0.
    """

    def __init__(
        self,
        epsilon: float = 1e-5,
        *,
        gamma_init: float = 1.0,
        beta_init: float = 0.0,
        input_shape: Optional[Sequence[int]] = None,
        dtype=np.float32,
        name: Optional[str] = None,
    ) -> None:
        if float(epsilon) <= 0.0:
            raise ValueError(f"epsilon must be positive, got {epsilon}")
        super().__init__(input_shape=input_shape, dtype=dtype, name=name)
        self.epsilon = float(epsilon)
        self.gamma_init = float(gamma_init)
        self.beta_init = float(beta_init)
        self.gamma: Optional[Tensor] = None
        self.beta: Optional[Tensor] = None
        self.num_features: Optional[int] = None

    def _build_affine(self, num_features: int) -> None:
        self.num_features = int(num_features)
        self.gamma = self.register_parameter(
            "gamma", Tensor.full((num_features,), self.gamma_init, dtype=self.dtype)
        )
        self.beta = self.register_parameter(
            "beta", Tensor.full((num_features,), self.beta_init, dtype=self.dtype)
        )

    def get_config(self) -> Dict[str, Any]:
        cfg = super().get_config()
        cfg.update(
            {
                "epsilon": self.epsilon,
                "gamma_init": self.gamma_init,
                "beta_init": self.beta_init,
            }
        )
        return cfg
