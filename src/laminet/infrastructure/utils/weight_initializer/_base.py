"""
Name-based initializer dispatch.

Built-in strategies register themselves on import of this package; layers
then refer to them by string, which keeps layer configs JSON-friendly:

    WeightInitializer("kaiming")(layer.weights)

Every strategy draws from the seeded streams in `tensor._random`, so the
initial parameters depend only on `set_seed` and build order.
"""

from __future__ import annotations

from typing import Callable, ClassVar, Dict

from ....domain.utils._weight_initialization import InitFn, _WeightInitializer
from ...tensor._tensor import Tensor


class WeightInitializer(_WeightInitializer):
    """
    Look up an initialization strategy by name.

    Raises
    ------
    ValueError
        If `initializer_name` was never registered.
    """

    INITIALIZERS: ClassVar[Dict[str, InitFn]] = {}

    def __init__(self, initializer_name: str) -> None:
        strategy = self.INITIALIZERS.get(initializer_name)
        if strategy is None:
            known = ", ".join(self.available()) or "<none>"
            raise ValueError(
                f"No initializer named {initializer_name!r} (known: {known})"
            )
        self.name = initializer_name
        self._strategy = strategy

    def __repr__(self) -> str:
        return f"WeightInitializer({self.name!r})"

    @classmethod
    def register_initializer(
        cls, name: str, *, overwrite: bool = False
    ) -> Callable[[InitFn], InitFn]:
        """Decorator adding a strategy; duplicates need `overwrite=True`."""
        if not name or not isinstance(name, str):
            raise ValueError("Initializer name must be a non-empty string")
        if name in cls.INITIALIZERS and not overwrite:
            raise ValueError(f"Initializer {name!r} is already registered")

        def register(strategy: InitFn) -> InitFn:
            cls.INITIALIZERS[name] = strategy
            return strategy

        return register

    @classmethod
    def available(cls) -> tuple[str, ...]:
        return tuple(sorted(cls.INITIALIZERS))

    def __call__(self, tensor: Tensor) -> Tensor:
        return self._strategy(tensor)
