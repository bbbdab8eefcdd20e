"""
Dense (fully-connected) layer for laminet.

Layout
------
Dense layers work in the *feature-major* layout: activations are stored
as `(features, N, 1, 1)` so that the forward pass is a single
`weights @ input` product with weights stored as `(units, in_features, 1, 1)`.
Channel-major input is transposed on the way in; the output is always
feature-major and is tagged as such, so successors know to transpose it
back when they need batch-major data.

Gradient policy
---------------
Weight and bias gradients are *accumulated* across backward calls until the
orchestrator calls `zero_gradients()`, which allows several micro-batches
to contribute to one update. Each accumulated gradient is then passed
through adaptive clipping with ceiling `max(grad_norm, epsilon * param_norm)`.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Optional, Sequence, Union

import numpy as np

from ...domain._errors import ShapeMismatchError
from ...domain._layout import FEATURE_MAJOR, OutputFormat
from .._layer import Layer, Shape4
from .._serialization import register_layer
from ..ops.clipping import adaptive_clip
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import TrainingContext


def _tied_array(buffer: Union[Tensor, np.ndarray]) -> np.ndarray:
    return buffer.data if isinstance(buffer, Tensor) else buffer


@register_layer()
class Dense(Layer):
    """
    Fully-connected layer `y = W x + b` in feature-major layout.

    Parameters
    ----------
    units : int
        Number of output features.
    use_bias : bool, optional
        Whether to add a bias vector. Default True.
    scale : bool, optional
        If True, the products are scaled by `1 / sqrt(in_features)`.
        Default False.
    clip_epsilon : float, optional
        Relative factor of the adaptive clipping ceiling. Default 1e-2.
    init : str, optional
        Registered initializer for the weights. Default "kaiming_uniform".
    input_shape : Sequence[int] | None
        `(in_features,)` for the first layer of a chain.

    Raises
    ------
    ValueError
        If `units` is not positive or `input_shape` is not 1-dimensional.
    """

    expected_input_rank = 1

    def __init__(
        self,
        units: int,
        *,
        use_bias: bool = True,
        scale: bool = False,
        clip_epsilon: float = 1e-2,
        init: str = "kaiming_uniform",
        input_shape: Optional[Sequence[int]] = None,
        dtype=np.float32,
        name: Optional[str] = None,
    ) -> None:
        if int(units) <= 0:
            raise ValueError(f"units must be positive, got {units}")
        super().__init__(input_shape=input_shape, dtype=dtype, name=name)
        self.units = int(units)
        self.use_bias = bool(use_bias)
        self.scale = bool(scale)
        self.clip_epsilon = float(clip_epsilon)
        self.init = init

        self.in_features: Optional[int] = None
        self.weights: Optional[Tensor] = None
        self.bias: Optional[Tensor] = None
        self._tied: Optional[np.ndarray] = None
        self._tied_counted = True

    def _compute_output_shape(self, input_shape: Shape4) -> Shape4:
        return (input_shape[0], self.units, 1, 1)

    def _resolve_output_format(self, input_format: OutputFormat) -> OutputFormat:
        return FEATURE_MAJOR

    def _build(self, input_shape: Shape4) -> None:
        _, c, h, w = input_shape
        self.in_features = c * h * w
        shape = (self.units, self.in_features, 1, 1)
        if self._tied is not None:
            weights = self._wrap_tied(shape)
        else:
            weights = self._new_weights(shape, self.init)
        self.weights = self.register_parameter(
            "weights", weights, count=self._tied is None or self._tied_counted
        )
        if self.use_bias:
            self.bias = self.register_parameter(
                "bias", Tensor.uniform((self.units,), -0.25, 0.25, dtype=self.dtype)
            )

    def _wrap_tied(self, shape: Shape4) -> Tensor:
        if self._tied.dtype != self.dtype:
            raise ValueError(
                f"{self.name}: tied buffer dtype {self._tied.dtype} differs from "
                f"layer dtype {self.dtype}"
            )
        if self._tied.size != int(np.prod(shape)):
            raise ShapeMismatchError(
                "tie_weights",
                f"buffer has {self._tied.size} elements, weights need "
                f"{int(np.prod(shape))}",
                expected=shape,
                actual=self._tied.shape,
            )
        return Tensor.wrap(self._tied, shape)

    def tie_weights(
        self, buffer: Union[Tensor, np.ndarray], count_parameters: bool = True
    ) -> "Dense":
        """
        Share the weight matrix with an external buffer.

        Parameters
        ----------
        buffer : Tensor | np.ndarray
            Buffer of `units * in_features` elements, e.g. the table of an
            `Embedding` with `vocab_size == units`.
        count_parameters : bool
            If False, the tied weights are excluded from
            `num_trainable_parameters()` because another layer counts them.

        Raises
        ------
        ValueError
            If the layer is already built.
        """
        if self._built:
            raise ValueError("tie_weights() must be called before build()")
        self._tied = _tied_array(buffer)
        self._tied_counted = bool(count_parameters)
        return self

    def _to_feature_major(self, x: Tensor) -> Tensor:
        if not self._input_format.is_feature_major:
            x = x.transpose2d()
        if x.dtype != self.dtype:
            x = self._tensor(self._as_array(x))
        return x

    def _forward(self, x: Tensor, ctx: Optional[TrainingContext]) -> Tensor:
        x_fm = self._to_feature_major(x)
        if x_fm.shape[0] != self.in_features:
            raise ShapeMismatchError(
                "Dense.forward",
                f"{self.name} expects {self.in_features} input features, "
                f"got {x_fm.shape[0]}",
                expected=(self.in_features,),
                actual=(x_fm.shape[0],),
            )
        out = self.weights.matmul(x_fm, scale=self.scale)
        if self.bias is not None:
            rows = out.data.reshape(self.units, -1)
            rows += self.bias.data[:, None]
        if ctx is not None:
            ctx.save_for_backward(x_fm)
            ctx.saved_meta["input_shape"] = x.shape
        return out

    def _backward(self, ctx: TrainingContext, grad: Tensor) -> Tensor:
        (x_fm,) = ctx.saved_tensors
        n = x_fm.shape[1]
        expected = (self.units, n, 1, 1)
        if grad.shape != expected:
            # batch-major (N, units) gradients are transposed; when units == N
            # the feature-major reading wins.
            if grad.shape != (n, self.units, 1, 1):
                raise ShapeMismatchError(
                    "Dense.backward",
                    f"{self.name} expects a gradient of shape {expected} "
                    f"(or batch-major {(n, self.units, 1, 1)}), got {grad.shape}",
                    expected=expected,
                    actual=grad.shape,
                )
            grad = grad.transpose2d()
        if grad.dtype != self.dtype:
            grad = self._tensor(self._as_array(grad))
        factor = 1.0 / math.sqrt(self.in_features) if self.scale else 1.0

        dw = self._gradients["weights"]
        dw.add_(grad.matmul(x_fm.transpose2d()).scale_(factor))
        adaptive_clip(dw, self.weights, self.clip_epsilon)

        if self.bias is not None:
            db = self._gradients["bias"]
            db.add_(grad.mean(axis=1))
            adaptive_clip(db, self.bias, self.clip_epsilon)

        dx = self.weights.transpose2d().matmul(grad).scale_(factor)
        if self._input_format.is_feature_major:
            return dx
        return dx.transpose2d().reshape(ctx.saved_meta["input_shape"])

    def get_config(self) -> Dict[str, Any]:
        cfg = super().get_config()
        cfg.update(
            {
                "units": self.units,
                "use_bias": self.use_bias,
                "scale": self.scale,
                "clip_epsilon": self.clip_epsilon,
                "init": self.init,
            }
        )
        return cfg
