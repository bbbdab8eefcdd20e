"""
Layer capability interfaces.

Layers are described by three small, orthogonal capabilities instead of a
single deep class hierarchy:

- `ShapeInferring`: the layer can resolve its shapes and layout at build time.
- `StatefulForwardBackward`: the layer computes a forward activation and,
  from a training context it filled during forward, the backward gradient.
- `HasParameters`: the layer owns trainable tensors and their gradients.

Every concrete layer implements the first two. Only trainable layers
(Dense, Conv2D, the normalization layers and Embedding) carry meaningful
parameters; the others report empty parameter lists.

All interfaces are `runtime_checkable` so that orchestration code can use
`isinstance` checks against them.
"""

from __future__ import annotations

from typing import Optional, Protocol, Sequence, runtime_checkable

from ._layout import OutputFormat
from ._tensor import ITensor


@runtime_checkable
class ShapeInferring(Protocol):
    """
    Capability: resolve input/output shapes once the predecessor is known.
    """

    def build(self, position_id: int) -> None:
        """
        Resolve shapes, allocate parameters and gradients.

        Parameters
        ----------
        position_id : int
            Index of the layer in its chain. Used to derive a unique name.

        Raises
        ------
        LayerBuildError
            If no input shape can be resolved, or the layer was already built.
        """
        ...

    def output_shape(self) -> tuple[int, int, int, int]:
        """
        Return the logical output shape `(N, C, H, W)`.

        The batch axis is the sentinel `-1` until a concrete batch is seen.
        Before build, dimensions that cannot yet be derived are also `-1`.
        """
        ...

    def output_format(self) -> OutputFormat:
        """Return the layout tag stamped on this layer's output."""
        ...


@runtime_checkable
class StatefulForwardBackward(Protocol):
    """
    Capability: manual forward/backward with an explicit training context.
    """

    def forward(self, x: ITensor, training: bool = False) -> ITensor:
        """
        Compute the layer output.

        When `training` is true the state needed by `backward` is captured in
        a training context owned by the layer until the next training forward.
        """
        ...

    def backward(self, grad: ITensor) -> Optional[ITensor]:
        """
        Return the gradient with respect to the input of the last training
        forward, updating parameter gradients as a side effect.

        Layers whose input is not differentiable (Embedding) return None.
        """
        ...


@runtime_checkable
class HasParameters(Protocol):
    """
    Capability: owns trainable parameter tensors and their gradients.
    """

    def get_parameters(self) -> Sequence[ITensor]:
        """Return parameter tensors by reference, in a fixed order."""
        ...

    def get_parameter_gradients(self) -> Sequence[ITensor]:
        """Return gradient tensors by reference, in the order of `get_parameters`."""
        ...

    def update_parameters(self, deltas: Sequence[ITensor]) -> None:
        """Apply `parameter -= delta` for every slot."""
        ...

    def zero_gradients(self) -> None:
        """Reset every gradient buffer to zero."""
        ...

    def num_trainable_parameters(self) -> int:
        """Return the number of trainable scalars owned by this layer."""
        ...


@runtime_checkable
class ILayer(ShapeInferring, StatefulForwardBackward, HasParameters, Protocol):
    """Union of all layer capabilities."""
