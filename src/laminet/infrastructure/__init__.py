"""
Infrastructure layer of laminet: the concrete tensor, CPU kernels and layers.
"""

from ._layer import Layer, build_chain
from ._parallel import get_num_workers, parallel_chunks, parallel_for, set_num_workers
from ._serialization import (
    chain_from_config,
    chain_to_config,
    layer_from_config,
    layer_to_config,
    register_layer,
)
from .activations import (
    GELU,
    LeakyReLU,
    Mish,
    ReLU,
    Sigmoid,
    Softmax,
    Swish,
    Tanh,
)
from .convolution import Conv2D
from .fully_connected import Dense
from .layers import BatchNorm, Dropout, Embedding, LayerNorm
from .pooling import GlobalAveragePooling2D, MaxPool2D
from .shape import Flatten, Reshape, Upsampling2D
from .tensor import Tensor, TrainingContext, get_seed, set_seed
from .utils.weight_initializer import WeightInitializer
