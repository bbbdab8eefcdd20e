"""
Structural and lifecycle exceptions for laminet.

This module defines the custom errors raised by tensors and layers when
they are used in a way that indicates a configuration bug rather than a
transient problem. None of these conditions are recoverable locally; they
propagate to the caller so the model definition can be fixed.

Two families exist:

- shape errors (`ShapeMismatchError`) are `ValueError` subclasses, since
  they are raised at the point a tensor operation receives an invalid
  argument;
- lifecycle errors (`LayerBuildError`, `MissingTrainingContextError`) are
  `RuntimeError` subclasses, since they signal that a layer is in the wrong
  state for the requested call.
"""

from __future__ import annotations

from typing import Optional, Sequence


class ShapeMismatchError(ValueError):
    """
    Raised when a tensor operation receives operands with incompatible shapes.

    Typical triggers are reshaping to a shape with a different element count,
    multiplying matrices whose inner dimensions disagree, and elementwise
    arithmetic between tensors of different shapes.

    Attributes
    ----------
    op : str
        Name of the operation that rejected its operands (e.g. "matmul").
    expected : tuple[int, ...] | None
        The shape (or dimension) the operation expected, when meaningful.
    actual : tuple[int, ...] | None
        The shape (or dimension) that was supplied.
    """

    def __init__(
        self,
        op: str,
        message: str,
        *,
        expected: Optional[Sequence[int]] = None,
        actual: Optional[Sequence[int]] = None,
    ) -> None:
        """
        Initialize the ShapeMismatchError.

        Parameters
        ----------
        op : str
            Operation name.
        message : str
            Human-readable description of the mismatch.
        expected : Sequence[int] | None
            Expected shape or dimension.
        actual : Sequence[int] | None
            Actual shape or dimension.
        """
        super().__init__(f"{op}: {message}")
        self.op = op
        self.expected = tuple(expected) if expected is not None else None
        self.actual = tuple(actual) if actual is not None else None


class LayerBuildError(RuntimeError):
    """
    Raised when a layer cannot be built.

    A layer is built exactly once, after its predecessor. Building fails when
    no input shape can be resolved (neither an explicit `input_shape` nor a
    predecessor exists) or when `build` is invoked a second time.
    """

    def __init__(self, layer: str, reason: str) -> None:
        super().__init__(f"{layer}: {reason}")
        self.layer = layer
        self.reason = reason


class MissingTrainingContextError(RuntimeError):
    """
    Raised when `backward` is called on a layer that has no training context.

    Layers only cache the state required by `backward` during a forward call
    made with `training=True`. Calling `backward` after an inference-only
    forward (or before any forward) is a usage error.
    """

    def __init__(self, layer: str) -> None:
        super().__init__(
            f"{layer}: backward() requires a preceding forward(..., training=True)."
        )
        self.layer = layer
