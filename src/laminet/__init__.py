"""
laminet: a layer-based neural-network core with hand-written backpropagation.

Layers form a linear chain. An external orchestrator builds them in order,
runs `forward` front-to-back and `backward` back-to-front, and applies
parameter updates through `update_parameters`.

Example
-------
>>> import laminet as ln
>>> ln.set_seed(0)
>>> layers = ln.build_chain([
...     ln.Conv2D(8, 3, padding="same", input_shape=(1, 28, 28)),
...     ln.ReLU(),
...     ln.MaxPool2D(2),
...     ln.Flatten(),
...     ln.Dense(10),
...     ln.Softmax(),
... ])
"""

from .domain import (
    BATCH_SENTINEL,
    HasParameters,
    ILayer,
    LayerBuildError,
    Layout,
    MissingTrainingContextError,
    OutputFormat,
    ShapeInferring,
    ShapeMismatchError,
    StatefulForwardBackward,
)
from .infrastructure import (
    GELU,
    BatchNorm,
    Conv2D,
    Dense,
    Dropout,
    Embedding,
    Flatten,
    GlobalAveragePooling2D,
    Layer,
    LayerNorm,
    LeakyReLU,
    MaxPool2D,
    Mish,
    ReLU,
    Reshape,
    Sigmoid,
    Softmax,
    Swish,
    Tanh,
    Tensor,
    TrainingContext,
    Upsampling2D,
    WeightInitializer,
    build_chain,
    chain_from_config,
    chain_to_config,
    get_num_workers,
    get_seed,
    layer_from_config,
    layer_to_config,
    register_layer,
    set_num_workers,
    set_seed,
)

__version__ = "0.1.0"
