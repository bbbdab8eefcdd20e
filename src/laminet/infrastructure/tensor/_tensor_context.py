from dataclasses import dataclass, field
from typing import Any

from ...domain._tensor import ITensor


@dataclass
class TrainingContext:
    """
    State captured by a layer's training-mode forward for its backward pass.

    A fresh `TrainingContext` is created for every `forward(..., training=True)`
    call and handed to the layer's forward implementation, which fills it.
    The layer keeps the context until the next training forward replaces it;
    `backward` reads from it and never writes back.

    Attributes
    ----------
    saved_tensors : list[ITensor]
        Tensors saved during forward (cached inputs, outputs, masks,
        normalized values).
    saved_meta : dict[str, Any]
        Non-tensor metadata (shapes, layout flags, padding offsets).

    Notes
    -----
    The context is an explicit object rather than a set of instance fields so
    that what survives between forward and backward is visible in one place.
    """

    saved_tensors: list[ITensor] = field(default_factory=list)
    saved_meta: dict[str, Any] = field(default_factory=dict)

    def save_for_backward(self, *tensors: ITensor) -> None:
        """
        Save tensors for use during the backward computation.

        Parameters
        ----------
        *tensors : Tensor
            Any number of tensors to append to `saved_tensors`.
        """
        self.saved_tensors.extend(tensors)
