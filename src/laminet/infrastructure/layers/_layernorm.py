"""
Layer normalization for laminet.

`LayerNorm` normalizes the embedding axis independently for every
(batch, sequence-position) pair. Sequence activations are laid out as
`(B, S, E, 1)`, so the statistics are taken over axis 2 and the learnable
`gamma` / `beta` vectors have length `E`.

Flat feature vectors `(N, F, 1, 1)` (e.g. the output of Flatten, or a
Dense output transposed back to batch-major) are treated as `S = 1`,
`E = F`, i.e. every sample is normalized over its features.

There are no running statistics: training and inference compute the same
function. Gradients are overwritten on every backward call.
"""

from __future__ import annotations

from typing import Optional

import numpy as np

from ...domain._layout import CHANNEL_MAJOR, OutputFormat
from .._layer import Shape4
from .._parallel import parallel_chunks
from .._serialization import register_layer
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import TrainingContext
from ._normalization import NormalizationLayer, normalization_input_grad

ROWS_PER_TASK = 256


@register_layer()
class LayerNorm(NormalizationLayer):
    """
    Per-position normalization over the embedding axis.

    Parameters
    ----------
    epsilon : float, optional
        Variance floor. Default 1e-5.
    gamma_init, beta_init : float, optional
        Initial fill of gamma and beta. Defaults 1.0 and 0.0.
    """

    def _resolve_output_format(self, input_format: OutputFormat) -> OutputFormat:
        if input_format.is_feature_major:
            return CHANNEL_MAJOR
        return input_format

    @staticmethod
    def _embedding_axis(shape: Shape4) -> tuple[bool, int]:
        """Return (flat_features, embedding_length) for a logical shape."""
        _, c, h, w = shape
        if h == 1 and w == 1:
            return True, c
        return False, h

    def _build(self, input_shape: Shape4) -> None:
        _, length = self._embedding_axis(input_shape)
        self._build_affine(length)

    def _rows(self, arr: np.ndarray) -> np.ndarray:
        """View (or copy) `arr` as a 2-D `(positions, E)` matrix."""
        flat, _ = self._embedding_axis(arr.shape)
        if flat:
            return arr.reshape(arr.shape[0], arr.shape[1])
        n, s, e, w = arr.shape
        return np.ascontiguousarray(arr.transpose(0, 1, 3, 2)).reshape(n * s * w, e)

    def _unrows(self, rows: np.ndarray, shape: Shape4) -> np.ndarray:
        flat, _ = self._embedding_axis(shape)
        if flat:
            return rows.reshape(shape)
        n, s, e, w = shape
        return np.ascontiguousarray(rows.reshape(n, s, w, e).transpose(0, 1, 3, 2))

    def _forward(self, x: Tensor, ctx: Optional[TrainingContext]) -> Tensor:
        arr = self._as_array(self._as_batch_major(x))
        _, length = self._embedding_axis(arr.shape)
        if length != self.num_features:
            raise ValueError(
                f"{self.name}: expected embedding length {self.num_features}, "
                f"got {length} (input {arr.shape})"
            )
        rows = self._rows(arr)
        gamma, beta = self.gamma.data, self.beta.data
        y = np.empty_like(rows)
        x_hat = np.empty_like(rows)
        inv_std = np.empty((rows.shape[0], 1), dtype=rows.dtype)

        def _chunk(start: int, stop: int) -> None:
            r = rows[start:stop]
            mean = r.mean(axis=1, keepdims=True)
            var = r.var(axis=1, keepdims=True)
            inv_std[start:stop] = 1.0 / np.sqrt(var + self.epsilon)
            x_hat[start:stop] = (r - mean) * inv_std[start:stop]
            y[start:stop] = gamma * x_hat[start:stop] + beta

        parallel_chunks(rows.shape[0], ROWS_PER_TASK, _chunk)

        if ctx is not None:
            ctx.saved_meta["x_hat"] = x_hat
            ctx.saved_meta["inv_std"] = inv_std
            ctx.saved_meta["shape"] = arr.shape
        return self._tensor(self._unrows(y, arr.shape))

    def _backward(self, ctx: TrainingContext, grad: Tensor) -> Tensor:
        shape = ctx.saved_meta["shape"]
        x_hat = ctx.saved_meta["x_hat"]
        inv_std = ctx.saved_meta["inv_std"]
        g = self._rows(self._as_array(grad).reshape(shape))
        gamma = self.gamma.data

        self._gradients["gamma"].copy_from_numpy((g * x_hat).sum(axis=0))
        self._gradients["beta"].copy_from_numpy(g.sum(axis=0))

        dx = np.empty_like(g)

        def _chunk(start: int, stop: int) -> None:
            dx[start:stop] = normalization_input_grad(
                g[start:stop] * gamma, x_hat[start:stop], inv_std[start:stop], (1,)
            )

        parallel_chunks(g.shape[0], ROWS_PER_TASK, _chunk)
        return self._restore_input_layout(self._tensor(self._unrows(dx, shape)))
