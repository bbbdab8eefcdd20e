"""
Layer configuration registry.

Layers register themselves with `@register_layer()` so that a configuration
tree produced by `layer_to_config` can be turned back into fresh, unbuilt
layer instances by `layer_from_config`. Only constructor configuration is
captured; parameter values are the concern of whoever persists the tensors
exposed by `get_parameters()`.

Node format
-----------
{
  "type": "Dense",
  "config": {"units": 10, ...}
}
"""

from __future__ import annotations

from typing import Any, Callable, Optional, Sequence, Type

_LAYER_REGISTRY: dict[str, Type[Any]] = {}


def register_layer(name: Optional[str] = None) -> Callable[[Type[Any]], Type[Any]]:
    """
    Decorator to register a Layer class for configuration round-trips.
    """

    def deco(cls: Type[Any]) -> Type[Any]:
        key = name or cls.__name__
        _LAYER_REGISTRY[key] = cls
        return cls

    return deco


def registered_layers() -> tuple[str, ...]:
    """Return the names of all registered layer types (sorted)."""
    return tuple(sorted(_LAYER_REGISTRY))


def layer_to_config(layer: Any) -> dict[str, Any]:
    """
    Convert a layer into a JSON-compatible configuration node.
    """
    get_cfg = getattr(layer, "get_config", None)
    cfg = get_cfg() if callable(get_cfg) else {}
    return {"type": layer.__class__.__name__, "config": cfg}


def layer_from_config(node: dict[str, Any]) -> Any:
    """
    Rebuild an unbuilt layer from a configuration node.

    Raises
    ------
    ValueError
        If the node's type is not registered.
    """
    type_name = str(node["type"])
    if type_name not in _LAYER_REGISTRY:
        raise ValueError(
            f"Unknown layer type '{type_name}'. Register it via @register_layer."
        )

    cls = _LAYER_REGISTRY[type_name]
    cfg = node.get("config", {}) or {}
    return cls.from_config(cfg)


def chain_to_config(layers: Sequence[Any]) -> list[dict[str, Any]]:
    """Convert an ordered list of layers into a list of configuration nodes."""
    return [layer_to_config(layer) for layer in layers]


def chain_from_config(nodes: Sequence[dict[str, Any]]) -> list[Any]:
    """Rebuild an ordered list of unbuilt layers from configuration nodes."""
    return [layer_from_config(node) for node in nodes]
