"""
Domain layer of laminet: interfaces, layout tags and error types.

Nothing in this package depends on the infrastructure layer.
"""

from ._errors import LayerBuildError, MissingTrainingContextError, ShapeMismatchError
from ._layer import HasParameters, ILayer, ShapeInferring, StatefulForwardBackward
from ._layout import (
    BATCH_SENTINEL,
    CHANNEL_MAJOR,
    FEATURE_MAJOR,
    SPATIAL,
    Layout,
    OutputFormat,
    physical_shape,
)
from ._tensor import ITensor

__all__ = [
    "BATCH_SENTINEL",
    "CHANNEL_MAJOR",
    "FEATURE_MAJOR",
    "SPATIAL",
    "HasParameters",
    "ILayer",
    "ITensor",
    "LayerBuildError",
    "Layout",
    "MissingTrainingContextError",
    "OutputFormat",
    "ShapeInferring",
    "ShapeMismatchError",
    "StatefulForwardBackward",
    "physical_shape",
]
