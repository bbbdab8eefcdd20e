"""
Reshape layer for laminet.

Two ways to configure a `Reshape`:

- an explicit `target_shape`, either per-sample `(C, H, W)` or full
  `(N, C, H, W)` where `N = -1` keeps the incoming batch size;
- a sequence `mode` used around dense layers in sequence models:

  * ``"merge_batch_seq"``: `(N, S, E, W)` -> `(N*S, E*W, 1, 1)`, folding
    the sequence axis into the batch so a Dense layer processes every
    position independently;
  * ``"split_batch_seq"``: `(N*S, C, H, W)` -> `(N, S, C, H*W)`, the
    inverse. `S` is `seq_len` when given, otherwise the sequence length
    announced by the first layer of the chain.

The output shares the input buffer. Feature-major input is transposed to
batch-major first; backward restores the exact shape and layout seen in the
last training forward.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

import numpy as np

from ...domain._errors import ShapeMismatchError
from ...domain._layout import CHANNEL_MAJOR, OutputFormat
from .._layer import Layer, Shape4
from .._serialization import register_layer
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import TrainingContext

RESHAPE_MODES = ("merge_batch_seq", "split_batch_seq")


@register_layer()
class Reshape(Layer):
    """
    Reinterpret the elements of each batch under a new shape.

    Parameters
    ----------
    target_shape : Sequence[int] | None
        `(C, H, W)` or `(N, C, H, W)` with `N = -1` for "same batch".
    mode : str | None
        "merge_batch_seq" or "split_batch_seq". Exclusive with
        `target_shape`.
    seq_len : int | None
        Sequence length for "split_batch_seq".

    Raises
    ------
    ValueError
        If neither or both of `target_shape` / `mode` are given, the mode is
        unknown, or the target shape has the wrong rank.
    """

    def __init__(
        self,
        target_shape: Optional[Sequence[int]] = None,
        mode: Optional[str] = None,
        seq_len: Optional[int] = None,
        *,
        input_shape: Optional[Sequence[int]] = None,
        dtype=np.float32,
        name: Optional[str] = None,
    ) -> None:
        if (target_shape is None) == (mode is None):
            raise ValueError("Reshape needs exactly one of target_shape or mode")
        if mode is not None and mode not in RESHAPE_MODES:
            raise ValueError(f"Unknown reshape mode {mode!r}; expected one of {RESHAPE_MODES}")
        if target_shape is not None:
            target_shape = tuple(int(d) for d in target_shape)
            if len(target_shape) not in (3, 4):
                raise ValueError(
                    f"target_shape must have 3 or 4 dimensions, got {target_shape}"
                )
            if any(d <= 0 for d in target_shape[-3:]):
                raise ValueError(f"target_shape dimensions must be positive, got {target_shape}")
        if seq_len is not None and int(seq_len) <= 0:
            raise ValueError(f"seq_len must be positive, got {seq_len}")
        super().__init__(input_shape=input_shape, dtype=dtype, name=name)
        self.target_shape = target_shape
        self.mode = mode
        self.seq_len = int(seq_len) if seq_len is not None else None

    def _resolve_seq_len(self) -> int:
        if self.seq_len is not None:
            return self.seq_len
        first: Layer = self
        while first.previous_layer is not None:
            first = first.previous_layer
        if first is self:
            return -1
        return first.output_shape()[1]

    def _compute_output_shape(self, input_shape: Shape4) -> Shape4:
        n, c, h, w = input_shape
        if self.target_shape is not None:
            if len(self.target_shape) == 3:
                return (n,) + self.target_shape  # type: ignore[return-value]
            return self.target_shape  # type: ignore[return-value]
        if self.mode == "merge_batch_seq":
            return (n, h * w if min(h, w) >= 0 else -1, 1, 1)
        return (n, self._resolve_seq_len(), c, h * w if min(h, w) >= 0 else -1)

    def _resolve_output_format(self, input_format: OutputFormat) -> OutputFormat:
        return CHANNEL_MAJOR

    def _build(self, input_shape: Shape4) -> None:
        if self.mode == "split_batch_seq" and self._resolve_seq_len() <= 0:
            raise ValueError(
                f"{self.name}: split_batch_seq needs seq_len or a first layer "
                "announcing the sequence length"
            )
        if self.target_shape is not None:
            per_sample = int(np.prod(input_shape[1:]))
            out_per_sample = int(np.prod(self.target_shape[-3:]))
            if len(self.target_shape) == 3 and per_sample != out_per_sample:
                raise ShapeMismatchError(
                    "Reshape",
                    f"cannot reshape samples of {input_shape[1:]} to {self.target_shape}",
                    expected=input_shape[1:],
                    actual=self.target_shape,
                )

    def _target_for(self, shape: Shape4) -> Shape4:
        n, c, h, w = shape
        if self.target_shape is not None:
            if len(self.target_shape) == 3:
                return (n,) + self.target_shape  # type: ignore[return-value]
            t = self.target_shape
            return (n if t[0] == -1 else t[0], t[1], t[2], t[3])
        if self.mode == "merge_batch_seq":
            return (n * c, h * w, 1, 1)
        seq = self._resolve_seq_len()
        if n % seq:
            raise ShapeMismatchError(
                "Reshape",
                f"batch of {n} positions is not a multiple of seq_len {seq}",
                expected=(seq,),
                actual=(n,),
            )
        return (n // seq, seq, c, h * w)

    def _forward(self, x: Tensor, ctx: Optional[TrainingContext]) -> Tensor:
        xb = self._as_batch_major(x)
        if ctx is not None:
            ctx.saved_meta["shape"] = xb.shape
        return xb.reshape(self._target_for(xb.shape))

    def _backward(self, ctx: TrainingContext, grad: Tensor) -> Tensor:
        return self._restore_input_layout(grad.reshape(ctx.saved_meta["shape"]))

    def get_config(self) -> Dict[str, Any]:
        cfg = super().get_config()
        cfg.update(
            {
                "target_shape": list(self.target_shape) if self.target_shape else None,
                "mode": self.mode,
                "seq_len": self.seq_len,
            }
        )
        return cfg
