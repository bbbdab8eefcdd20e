"""
Token embedding lookup for laminet.

Input is a batch of integer token ids stored as `(B, S, 1, 1)`; output is
`(B, S, E, 1)`, where row `(b, s)` is a copy of the embedding-table row of
token `ids[b, s]`.

Backward is a scatter-add: every occurrence of a token id adds its incoming
gradient row into that id's gradient row, so repeated ids accumulate.
The table gradient is accumulated across backward calls until
`zero_gradients()`. Token ids are not differentiable, so `backward` returns
None.

The table can be tied to an external buffer (for example the weights of
an output projection) with `tie_weights`.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence, Union

import numpy as np

from ...domain._errors import ShapeMismatchError
from ...domain._layout import CHANNEL_MAJOR, OutputFormat
from .._layer import Layer, Shape4
from .._serialization import register_layer
from ..tensor._tensor import Tensor
from ..tensor._tensor_context import TrainingContext


@register_layer()
class Embedding(Layer):
    """
    Lookup table mapping token ids to dense vectors.

    Parameters
    ----------
    vocab_size : int
        Number of rows of the table.
    embed_dim : int
        Length of each embedding vector.
    input_shape : Sequence[int] | None
        `(seq_len,)` for the first layer of a chain.

    Notes
    -----
    The table is initialized from N(0, 0.02**2) unless `init_uniform` /
    `init_normal` override it.
    """

    expected_input_rank = 1

    def __init__(
        self,
        vocab_size: int,
        embed_dim: int,
        *,
        input_shape: Optional[Sequence[int]] = None,
        dtype=np.float32,
        name: Optional[str] = None,
    ) -> None:
        if int(vocab_size) <= 0 or int(embed_dim) <= 0:
            raise ValueError(
                f"vocab_size and embed_dim must be positive, got {vocab_size}, {embed_dim}"
            )
        super().__init__(input_shape=input_shape, dtype=dtype, name=name)
        self.vocab_size = int(vocab_size)
        self.embed_dim = int(embed_dim)
        self.weights: Optional[Tensor] = None
        self._tied: Optional[np.ndarray] = None
        self._tied_counted = True

    def _compute_output_shape(self, input_shape: Shape4) -> Shape4:
        return (input_shape[0], input_shape[1], self.embed_dim, 1)

    def _resolve_output_format(self, input_format: OutputFormat) -> OutputFormat:
        return CHANNEL_MAJOR

    def _build(self, input_shape: Shape4) -> None:
        shape = (self.vocab_size, self.embed_dim, 1, 1)
        if self._tied is not None:
            if self._tied.size != self.vocab_size * self.embed_dim:
                raise ShapeMismatchError(
                    "tie_weights",
                    f"buffer has {self._tied.size} elements, table needs "
                    f"{self.vocab_size * self.embed_dim}",
                    expected=shape,
                    actual=self._tied.shape,
                )
            if self._tied.dtype != self.dtype:
                raise ValueError(
                    f"{self.name}: tied buffer dtype {self._tied.dtype} differs from "
                    f"layer dtype {self.dtype}"
                )
            table = Tensor.wrap(self._tied, shape)
        elif self._custom_init is not None:
            table = self._new_weights(shape, "zeros")
        else:
            table = Tensor.normal(shape, 0.0, 0.02, dtype=self.dtype)
        self.weights = self.register_parameter(
            "weights", table, count=self._tied is None or self._tied_counted
        )

    def tie_weights(
        self, buffer: Union[Tensor, np.ndarray], count_parameters: bool = True
    ) -> "Embedding":
        """
        Use an external buffer as the embedding table.

        Parameters
        ----------
        buffer : Tensor | np.ndarray
            Buffer of exactly `vocab_size * embed_dim` elements.
        count_parameters : bool
            If False, the table is excluded from `num_trainable_parameters()`.

        Raises
        ------
        ValueError
            If the layer is already built.
        """
        if self._built:
            raise ValueError("tie_weights() must be called before build()")
        self._tied = buffer.data if isinstance(buffer, Tensor) else buffer
        self._tied_counted = bool(count_parameters)
        return self

    def _token_ids(self, x: Tensor) -> np.ndarray:
        arr = x.to_numpy()
        ids = arr.reshape(arr.shape[0], -1).astype(np.int64)
        if ids.size and (ids.min() < 0 or ids.max() >= self.vocab_size):
            raise IndexError(
                f"{self.name}: token ids must be in [0, {self.vocab_size}), "
                f"got range [{ids.min()}, {ids.max()}]"
            )
        return ids

    def _forward(self, x: Tensor, ctx: Optional[TrainingContext]) -> Tensor:
        ids = self._token_ids(x)
        table = self.weights.data.reshape(self.vocab_size, self.embed_dim)
        out = table[ids]
        if ctx is not None:
            ctx.saved_meta["ids"] = ids
        b, s = ids.shape
        return self._tensor(out.reshape(b, s, self.embed_dim, 1))

    def _backward(self, ctx: TrainingContext, grad: Tensor) -> None:
        ids = ctx.saved_meta["ids"]
        g = self._as_array(grad).reshape(ids.size, self.embed_dim)
        d_table = self._gradients["weights"].data.reshape(self.vocab_size, self.embed_dim)
        np.add.at(d_table, ids.reshape(-1), g)
        return None

    def get_config(self) -> Dict[str, Any]:
        cfg = super().get_config()
        cfg.update({"vocab_size": self.vocab_size, "embed_dim": self.embed_dim})
        return cfg
