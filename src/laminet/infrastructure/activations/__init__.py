from ._activations import (
    ElementwiseActivation,
    GELU,
    LeakyReLU,
    Mish,
    ReLU,
    Sigmoid,
    Softmax,
    Swish,
    Tanh,
)

__all__ = [
    ElementwiseActivation.__name__,
    GELU.__name__,
    LeakyReLU.__name__,
    Mish.__name__,
    ReLU.__name__,
    Sigmoid.__name__,
    Softmax.__name__,
    Swish.__name__,
    Tanh.__name__,
]
