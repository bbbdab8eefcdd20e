"""
Activation layers.

Elementwise activations wrap an `ElementwiseFunction` and fan the buffer
out over the kernel pool in fixed-size flat chunks. They are shape- and
layout-preserving: whatever layout the predecessor produced is passed
through unchanged.

Loss shortcuts
--------------
`Softmax` and, when it ends the chain, `Sigmoid` are paired with a
cross-entropy loss. Their `backward` interprets the incoming tensor as the
*target*, given batch-major (one row per sample) whatever the physical
layout of the output, and returns `output - target` in the layout of the
layer input: the gradient of the combined activation + loss with respect
to the pre-activation input.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

import numpy as np

from ...domain._errors import ShapeMismatchError
from ...domain._function import ElementwiseFunction
from ...domain._layout import CHANNEL_MAJOR, OutputFormat
from .._layer import Layer
from .._parallel import parallel_chunks
from .._serialization import register_layer
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import TrainingContext
from ._function import GELUFn, LeakyReLUFn, MishFn, ReLUFn, SigmoidFn, SwishFn, TanhFn

ELEMENTS_PER_TASK = 1 << 15
ROWS_PER_TASK = 256


def _loss_shortcut(layer: Layer, out: np.ndarray, target: Tensor) -> Tensor:
    """
    `out - target` for a batch-major output, returned in the input layout.

    The target is batch-major: `(N, C, H, W)` or any shape with the same
    sample count and per-sample size, e.g. `(N, units)` after a Dense layer.

    Raises
    ------
    ShapeMismatchError
        If the target does not hold one row of `C*H*W` values per sample.
    """
    t = layer._as_array(target)
    if t.shape != out.shape:
        if t.shape[0] != out.shape[0] or t.size != out.size:
            raise ShapeMismatchError(
                f"{type(layer).__name__}.backward",
                f"target shape {t.shape} does not match output shape {out.shape}",
                expected=out.shape,
                actual=t.shape,
            )
        t = t.reshape(out.shape)
    return layer._restore_input_layout(layer._tensor(out - t))


class ElementwiseActivation(Layer):
    """
    Base layer for pointwise activations.

    Subclasses set `fn` to an `ElementwiseFunction` instance.
    """

    fn: ElementwiseFunction

    def _forward(self, x: Tensor, ctx: Optional[TrainingContext]) -> Tensor:
        arr = self._as_array(x)
        flat = arr.reshape(-1)
        out = np.empty_like(flat)

        def _chunk(start: int, stop: int) -> None:
            out[start:stop] = self.fn.forward(flat[start:stop])

        parallel_chunks(flat.size, ELEMENTS_PER_TASK, _chunk)
        if ctx is not None:
            ctx.saved_meta["saved"] = out.copy() if self.fn.SAVES == "output" else flat.copy()
            ctx.saved_meta["output_shape"] = arr.shape
        return self._tensor(out.reshape(arr.shape))

    def _backward(self, ctx: TrainingContext, grad: Tensor) -> Tensor:
        saved = ctx.saved_meta["saved"]
        g = self._as_array(grad)
        g_flat = g.reshape(-1)
        dx = np.empty_like(saved)

        def _chunk(start: int, stop: int) -> None:
            dx[start:stop] = self.fn.backward(saved[start:stop], g_flat[start:stop])

        parallel_chunks(dx.size, ELEMENTS_PER_TASK, _chunk)
        return self._tensor(dx.reshape(g.shape))


@register_layer()
class Sigmoid(ElementwiseActivation):
    """
    Logistic sigmoid.

    Parameters
    ----------
    output_layer : bool | None, optional
        Whether `backward` applies the binary cross-entropy shortcut
        (`output - target`). `None` (default) decides at backward time:
        the shortcut is used when no layer follows this one.
    """

    def __init__(
        self,
        output_layer: Optional[bool] = None,
        *,
        input_shape: Optional[Sequence[int]] = None,
        dtype=np.float32,
        name: Optional[str] = None,
    ) -> None:
        super().__init__(input_shape=input_shape, dtype=dtype, name=name)
        self.fn = SigmoidFn()
        self.output_layer = output_layer

    def _uses_loss_shortcut(self) -> bool:
        if self.output_layer is None:
            return self.is_output_layer
        return bool(self.output_layer)

    def _backward(self, ctx: TrainingContext, grad: Tensor) -> Tensor:
        if not self._uses_loss_shortcut():
            return super()._backward(ctx, grad)
        out = self._tensor(ctx.saved_meta["saved"].reshape(ctx.saved_meta["output_shape"]))
        return _loss_shortcut(self, self._as_array(self._as_batch_major(out)), grad)

    def get_config(self) -> Dict[str, Any]:
        cfg = super().get_config()
        cfg["output_layer"] = self.output_layer
        return cfg


@register_layer()
class Tanh(ElementwiseActivation):
    """Hyperbolic tangent."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.fn = TanhFn()


@register_layer()
class ReLU(ElementwiseActivation):
    """Rectified linear unit."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.fn = ReLUFn()


@register_layer()
class LeakyReLU(ElementwiseActivation):
    """
    Leaky rectified linear unit.

    Parameters
    ----------
    alpha : float, optional
        Slope for negative inputs. Default 0.01.
    """

    def __init__(self, alpha: float = 0.01, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.fn = LeakyReLUFn(alpha)
        self.alpha = self.fn.alpha

    def get_config(self) -> Dict[str, Any]:
        cfg = super().get_config()
        cfg["alpha"] = self.alpha
        return cfg


@register_layer()
class GELU(ElementwiseActivation):
    """Gaussian error linear unit (erf form)."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.fn = GELUFn()


@register_layer()
class Mish(ElementwiseActivation):
    """x * tanh(softplus(x))."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.fn = MishFn()


@register_layer()
class Swish(ElementwiseActivation):
    """x * sigmoid(x)."""

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.fn = SwishFn()


@register_layer()
class Softmax(Layer):
    """
    Row-wise softmax over the features of every sample.

    Feature-major input is transposed to batch-major first, so the output
    is always `(N, C, H, W)` channel-major with each sample's `C*H*W`
    values summing to one. `backward` expects the one-hot (or soft) target
    and returns `output - target`, transposed back to the input layout.
    """

    def _resolve_output_format(self, input_format: OutputFormat) -> OutputFormat:
        return CHANNEL_MAJOR

    def _forward(self, x: Tensor, ctx: Optional[TrainingContext]) -> Tensor:
        arr = self._as_array(self._as_batch_major(x))
        n = arr.shape[0]
        rows = arr.reshape(n, -1)
        out = np.empty_like(rows)

        def _chunk(start: int, stop: int) -> None:
            r = rows[start:stop]
            e = np.exp(r - r.max(axis=1, keepdims=True))
            out[start:stop] = e / e.sum(axis=1, keepdims=True)

        parallel_chunks(n, ROWS_PER_TASK, _chunk)
        out = out.reshape(arr.shape)
        if ctx is not None:
            ctx.saved_meta["output"] = out
        return self._tensor(out)

    def _backward(self, ctx: TrainingContext, grad: Tensor) -> Tensor:
        return _loss_shortcut(self, ctx.saved_meta["output"], grad)
