"""
NumPy CPU kernels used by the layers (convolution, pooling, clipping).
"""
