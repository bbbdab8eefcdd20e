"""
Infrastructure base class for layers.

`Layer` implements the lifecycle shared by every concrete layer:

unbuilt → built → active

- *unbuilt*: only constructor configuration is known. `output_shape()` and
  `output_format()` already return best-effort answers derived from the
  configuration and, when connected, the predecessor.
- *built*: `build(position_id)` resolved the input shape (explicit
  `input_shape` for the first layer, the predecessor's output shape
  otherwise), computed the output shape, stamped the output format and
  allocated parameters and zeroed gradients.
- *active*: `forward` / `backward` run repeatedly. A training forward
  fills a fresh `TrainingContext` that the following `backward` consumes.

Subclasses customize the lifecycle through a small set of hooks:

- `_compute_output_shape(input_shape)`: pure shape law, also used before
  build (unknown dimensions are `-1`);
- `_resolve_output_format(input_format)`: layout tag for the output;
- `_build(input_shape)`: allocate parameters via `register_parameter`;
- `_forward(x, ctx)` / `_backward(ctx, grad)`: the numerical kernels.

The base class implements `HasParameters` on top of an ordered parameter
registry, so layers without parameters get empty lists for free.
"""

from __future__ import annotations

import logging
import warnings
from typing import Any, ClassVar, Dict, List, Optional, Sequence, Tuple

import numpy as np
from typing_extensions import Self

from ..domain._errors import LayerBuildError, MissingTrainingContextError
from ..domain._layer import ILayer
from ..domain._layout import BATCH_SENTINEL, CHANNEL_MAJOR, OutputFormat
from .tensor._tensor import Tensor
from .tensor._tensor_context import TrainingContext
from .utils.weight_initializer import WeightInitializer

logger = logging.getLogger(__name__)

Shape4 = Tuple[int, int, int, int]


class Layer(ILayer):
    """
    Base class for all laminet layers.

    Parameters
    ----------
    input_shape : Sequence[int] | None
        Per-sample input shape for the first layer of a chain, e.g.
        `(features,)`, `(seq_len,)` or `(channels, height, width)`. Ignored
        (with a warning on disagreement) when the layer has a predecessor.
    dtype : numpy dtype, optional
        Dtype of parameters, gradients and outputs. Defaults to float32.
    name : str | None
        Explicit layer name; defaults to `"<type>_<position_id>"` at build.

    Raises
    ------
    ValueError
        If `input_shape` has the wrong rank for this layer type.
    """

    expected_input_rank: ClassVar[Optional[int]] = None

    def __init__(
        self,
        *,
        input_shape: Optional[Sequence[int]] = None,
        dtype=np.float32,
        name: Optional[str] = None,
    ) -> None:
        self.previous_layer: Optional[Layer] = None
        self.next_layer: Optional[Layer] = None

        self.dtype = np.dtype(dtype)
        self.name = name
        self.position_id: Optional[int] = None

        self._config_input_shape = (
            tuple(int(d) for d in input_shape) if input_shape is not None else None
        )
        self._explicit_input_shape = (
            self._normalize_input_shape(self._config_input_shape)
            if self._config_input_shape is not None
            else None
        )

        self._built = False
        self._input_shape: Optional[Shape4] = None
        self._output_shape: Optional[Shape4] = None
        self._input_format: OutputFormat = CHANNEL_MAJOR
        self._output_format: Optional[OutputFormat] = None

        self._parameters: Dict[str, Tensor] = {}
        self._gradients: Dict[str, Tensor] = {}
        self._uncounted: set[str] = set()
        self._custom_init: Optional[Tuple[str, float, float]] = None

        self._ctx: Optional[TrainingContext] = None

    # ------------------------------------------------------------------
    # Chain wiring and shape resolution
    # ------------------------------------------------------------------
    def _normalize_input_shape(self, shape: Tuple[int, ...]) -> Shape4:
        rank = self.expected_input_rank
        if rank is not None and len(shape) != rank:
            raise ValueError(
                f"{type(self).__name__} expects an input_shape of rank {rank}, "
                f"got {shape}"
            )
        if not 1 <= len(shape) <= 3:
            raise ValueError(
                f"input_shape must have 1 to 3 per-sample dimensions, got {shape}"
            )
        if any(d <= 0 for d in shape):
            raise ValueError(f"input_shape dimensions must be positive, got {shape}")
        padded = tuple(shape) + (1,) * (3 - len(shape))
        return (BATCH_SENTINEL,) + padded  # type: ignore[return-value]

    @property
    def built(self) -> bool:
        return self._built

    @property
    def is_output_layer(self) -> bool:
        """True when no layer follows this one in its chain."""
        return self.next_layer is None

    @property
    def input_shape(self) -> Optional[Shape4]:
        """Resolved logical input shape (None before build)."""
        return self._input_shape

    @property
    def input_format(self) -> OutputFormat:
        """Layout tag of the input this layer receives."""
        return self._input_format

    def connect(self, previous: "Layer") -> Self:
        """
        Link `previous` in front of this layer and return self.
        """
        self.previous_layer = previous
        previous.next_layer = self
        return self

    def _static_input(self) -> Tuple[Optional[Shape4], OutputFormat]:
        if self.previous_layer is not None:
            return self.previous_layer.output_shape(), self.previous_layer.output_format()
        if self._explicit_input_shape is not None:
            return self._explicit_input_shape, CHANNEL_MAJOR
        return None, CHANNEL_MAJOR

    def build(self, position_id: int) -> None:
        """
        Resolve shapes and allocate parameters.

        Parameters
        ----------
        position_id : int
            Index of the layer in its chain.

        Raises
        ------
        LayerBuildError
            If the layer was already built, or no input shape can be resolved.
        """
        label = self.name or f"{type(self).__name__.lower()}_{position_id}"
        if self._built:
            raise LayerBuildError(label, "layer has already been built")

        in_shape, in_format = self._static_input()
        if in_shape is None:
            raise LayerBuildError(
                label, "Cannot build the first layer without an input shape"
            )
        if any(d < 0 for d in in_shape[1:]):
            raise LayerBuildError(
                label, f"predecessor output shape {in_shape} is not resolved"
            )
        if (
            self.previous_layer is not None
            and self._explicit_input_shape is not None
            and tuple(self._explicit_input_shape[1:]) != tuple(in_shape[1:])
        ):
            warnings.warn(
                f"{label}: explicit input_shape {self._config_input_shape} ignored; "
                f"predecessor produces {tuple(in_shape[1:])}",
                stacklevel=2,
            )

        self.position_id = position_id
        self.name = label
        self._input_shape = (BATCH_SENTINEL,) + tuple(in_shape[1:])  # type: ignore[assignment]
        self._input_format = in_format
        self._output_shape = self._compute_output_shape(self._input_shape)
        self._output_format = self._resolve_output_format(in_format)
        self._build(self._input_shape)
        self._built = True

        logger.debug(
            "built %s: input %s (%s) -> output %s (%s), %d trainable parameters",
            self.name,
            self._input_shape,
            in_format.layout.value,
            self._output_shape,
            self._output_format.layout.value,
            self.num_trainable_parameters(),
        )

    def output_shape(self) -> Shape4:
        """
        Return the logical output shape `(N, C, H, W)` with `N = -1`.

        Before build the shape is derived from the configuration and the
        predecessor; dimensions that cannot be derived yet are `-1`.
        """
        if self._built:
            return self._output_shape  # type: ignore[return-value]
        in_shape, _ = self._static_input()
        if in_shape is None:
            in_shape = (BATCH_SENTINEL, -1, -1, -1)
        return self._compute_output_shape((BATCH_SENTINEL,) + tuple(in_shape[1:]))

    def output_format(self) -> OutputFormat:
        """Return the layout tag this layer stamps on its output."""
        if self._built:
            return self._output_format  # type: ignore[return-value]
        _, in_format = self._static_input()
        return self._resolve_output_format(in_format)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------
    def _compute_output_shape(self, input_shape: Shape4) -> Shape4:
        return input_shape

    def _resolve_output_format(self, input_format: OutputFormat) -> OutputFormat:
        return input_format

    def _build(self, input_shape: Shape4) -> None:
        pass

    def _forward(self, x: Tensor, ctx: Optional[TrainingContext]) -> Tensor:
        raise NotImplementedError

    def _backward(self, ctx: TrainingContext, grad: Tensor) -> Optional[Tensor]:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Forward / backward
    # ------------------------------------------------------------------
    def forward(self, x: Tensor, training: bool = False) -> Tensor:
        """
        Compute the layer output.

        Parameters
        ----------
        x : Tensor
            Input in the layout announced by the predecessor.
        training : bool
            When True, a fresh training context is filled for `backward`.
            Inference neither caches state nor mutates training-only state.

        Raises
        ------
        LayerBuildError
            If the layer has not been built.
        """
        if not self._built:
            raise LayerBuildError(
                self.name or type(self).__name__, "forward() called before build()"
            )
        ctx = TrainingContext() if training else None
        out = self._forward(x, ctx)
        if ctx is not None:
            self._ctx = ctx
        return out

    def backward(self, grad: Tensor) -> Optional[Tensor]:
        """
        Return the gradient with respect to the input of the last training
        forward and update parameter gradients.

        Raises
        ------
        MissingTrainingContextError
            If no training forward preceded this call.
        """
        if self._ctx is None:
            raise MissingTrainingContextError(self.name or type(self).__name__)
        return self._backward(self._ctx, grad)

    # ------------------------------------------------------------------
    # Layout helpers
    # ------------------------------------------------------------------
    def _as_batch_major(self, x: Tensor) -> Tensor:
        """Transpose feature-major input into the logical batch-major layout."""
        if self._input_format.is_feature_major:
            return x.transpose2d()
        return x

    def _restore_input_layout(self, grad: Tensor) -> Tensor:
        """Inverse of `_as_batch_major` for gradients flowing backward."""
        if self._input_format.is_feature_major:
            return grad.transpose2d()
        return grad

    def _as_array(self, x: Tensor) -> np.ndarray:
        """4-D view of `x` in this layer's dtype (copied only if the dtype differs)."""
        return x.to_numpy().astype(self.dtype, copy=False)

    def _tensor(self, array: np.ndarray) -> Tensor:
        return Tensor._from_flat(
            np.ascontiguousarray(array, dtype=self.dtype).reshape(-1), array.shape
        )

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------
    def register_parameter(
        self, name: str, tensor: Tensor, *, count: bool = True
    ) -> Tensor:
        """
        Register a trainable tensor and allocate its zeroed gradient.

        Parameters
        ----------
        name : str
            Slot name; registration order defines the parameter order.
        tensor : Tensor
            Parameter tensor (owned or tied).
        count : bool
            Whether the tensor contributes to `num_trainable_parameters`.
        """
        self._parameters[name] = tensor
        self._gradients[name] = Tensor.zeros(tensor.shape, dtype=tensor.dtype)
        if not count:
            self._uncounted.add(name)
        return tensor

    def get_parameters(self) -> List[Tensor]:
        """Return parameter tensors by reference, in registration order."""
        return list(self._parameters.values())

    def get_parameter_gradients(self) -> List[Tensor]:
        """Return gradient tensors by reference, in the order of `get_parameters`."""
        return [self._gradients[k] for k in self._parameters]

    def named_parameters(self) -> List[Tuple[str, Tensor]]:
        return list(self._parameters.items())

    def update_parameters(self, deltas: Sequence[Any]) -> None:
        """
        Apply `parameter -= delta` for every slot, in `get_parameters` order.

        Raises
        ------
        ValueError
            If the number of deltas differs from the number of parameters.
        ShapeMismatchError
            If a delta's shape differs from its parameter's.
        """
        params = self.get_parameters()
        if len(deltas) != len(params):
            raise ValueError(
                f"{self.name}: expected {len(params)} parameter deltas, got {len(deltas)}"
            )
        for param, delta in zip(params, deltas):
            if isinstance(delta, np.ndarray):
                delta = Tensor(param.shape, dtype=param.dtype, data=delta)
            param.sub_(delta)

    def zero_gradients(self) -> None:
        """Reset every gradient buffer to zero."""
        for grad in self._gradients.values():
            grad.fill(0.0)

    def num_trainable_parameters(self) -> int:
        """Number of trainable scalars, excluding tied tensors counted elsewhere."""
        return sum(
            t.size for k, t in self._parameters.items() if k not in self._uncounted
        )

    def init_uniform(self, low: float, high: float) -> Self:
        """
        Initialize weights from U[low, high) instead of the default strategy.

        Raises
        ------
        ValueError
            If called after build or with `low > high`.
        """
        if self._built:
            raise ValueError("init_uniform() must be called before build()")
        if low > high:
            raise ValueError(f"init_uniform requires low <= high, got [{low}, {high}]")
        self._custom_init = ("uniform", float(low), float(high))
        return self

    def init_normal(self, mean: float, std: float) -> Self:
        """
        Initialize weights from N(mean, std**2) instead of the default strategy.

        Raises
        ------
        ValueError
            If called after build or with a negative `std`.
        """
        if self._built:
            raise ValueError("init_normal() must be called before build()")
        if std < 0:
            raise ValueError(f"init_normal requires std >= 0, got {std}")
        self._custom_init = ("normal", float(mean), float(std))
        return self

    def _new_weights(self, shape: Sequence[int], default_init: str) -> Tensor:
        """Allocate a weight tensor using the custom range or `default_init`."""
        if self._custom_init is not None:
            kind, a, b = self._custom_init
            if kind == "uniform":
                return Tensor.uniform(shape, a, b, dtype=self.dtype)
            return Tensor.normal(shape, a, b, dtype=self.dtype)
        tensor = Tensor.zeros(shape, dtype=self.dtype)
        return WeightInitializer(default_init)(tensor)

    def debug_statistics(self) -> Dict[str, Dict[str, float]]:
        """
        Summarize parameter and gradient magnitudes.

        Returns
        -------
        dict[str, dict[str, float]]
            For every parameter slot: `abs_mean`, `abs_max`, `l2_norm` of the
            parameter and `grad_abs_mean`, `grad_abs_max`, `grad_l2_norm` of
            its gradient.
        """
        stats: Dict[str, Dict[str, float]] = {}
        for key, param in self._parameters.items():
            grad = self._gradients[key]
            stats[key] = {
                "abs_mean": param.abs_mean(),
                "abs_max": param.abs_max(),
                "l2_norm": param.l2_norm(),
                "grad_abs_mean": grad.abs_mean(),
                "grad_abs_max": grad.abs_max(),
                "grad_l2_norm": grad.l2_norm(),
            }
            logger.debug("%s.%s: %s", self.name, key, stats[key])
        return stats

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------
    def get_config(self) -> Dict[str, Any]:
        """
        Return a JSON-serializable constructor configuration.

        Subclasses extend the returned dictionary with their own arguments.
        """
        cfg: Dict[str, Any] = {
            "input_shape": (
                list(self._config_input_shape)
                if self._config_input_shape is not None
                else None
            ),
            "dtype": self.dtype.name,
        }
        if self._custom_init is not None:
            cfg["custom_init"] = list(self._custom_init)
        return cfg

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> Self:
        """
        Construct an unbuilt layer from `get_config()` output.
        """
        cfg = dict(cfg)
        custom = cfg.pop("custom_init", None)
        layer = cls(**cfg)
        if custom is not None:
            kind, a, b = custom
            if kind == "uniform":
                layer.init_uniform(a, b)
            else:
                layer.init_normal(a, b)
        return layer

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, output_shape={self.output_shape()})"


def build_chain(layers: Sequence[Layer]) -> List[Layer]:
    """
    Connect `layers` front-to-back and build them in order.

    Parameters
    ----------
    layers : Sequence[Layer]
        Unbuilt layers; the first one needs an explicit `input_shape`.

    Returns
    -------
    list[Layer]
        The same layers, built.
    """
    chain = list(layers)
    for i, layer in enumerate(chain):
        if i > 0:
            layer.connect(chain[i - 1])
        layer.build(i)
    return chain
