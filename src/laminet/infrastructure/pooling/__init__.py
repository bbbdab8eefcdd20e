from ._pooling_module import GlobalAveragePooling2D, MaxPool2D

__all__ = [
    GlobalAveragePooling2D.__name__,
    MaxPool2D.__name__,
]
