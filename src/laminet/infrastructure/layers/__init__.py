"""
Trainable and regularization layers: normalization, dropout, embedding.
"""

from ._batchnorm import BatchNorm
from ._dropout import Dropout
from ._embedding import Embedding
from ._layernorm import LayerNorm
from ._normalization import NormalizationLayer

__all__ = [
    BatchNorm.__name__,
    Dropout.__name__,
    Embedding.__name__,
    LayerNorm.__name__,
    NormalizationLayer.__name__,
]
