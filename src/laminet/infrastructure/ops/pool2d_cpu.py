"""
CPU pooling kernels for laminet.

Max pooling
-----------
Forward takes the maximum of every `pool x pool` window. Backward does
not reuse indices from forward; it re-derives the arg-max from the cached
input by scanning each window in row-major order and keeping the first
position whose value is *strictly greater* than the running maximum. Ties
therefore route the gradient to the earliest position in scan order. The
gradient is added (not assigned) into that position, because overlapping
windows (stride < pool) can select the same input element.

Global average pooling
----------------------
Forward averages every spatial position per (image, channel). Backward
divides the incoming gradient by `H * W` and broadcasts it.

All kernels are fanned out per image; images never share output memory.
"""

from __future__ import annotations

import numpy as np

from .._parallel import parallel_for


def pool_output_size(in_size: int, pool: int, stride: int) -> int:
    """
    Output extent along one axis: `(in - pool) // stride + 1`.

    Returns -1 for unknown extents and 0 when the window does not fit.
    """
    if in_size < 0:
        return -1
    if in_size < pool:
        return 0
    return (in_size - pool) // stride + 1


def _window(x: np.ndarray, ph: int, pw: int, stride: int, H_out: int, W_out: int):
    """View of the elements at offset (ph, pw) of every window."""
    return x[
        ...,
        ph : ph + stride * (H_out - 1) + 1 : stride,
        pw : pw + stride * (W_out - 1) + 1 : stride,
    ]


def maxpool2d_forward_cpu(x: np.ndarray, pool: int, stride: int) -> np.ndarray:
    """
    Compute the forward pass of 2D max pooling.

    Parameters
    ----------
    x : np.ndarray
        Input of shape (N, C, H, W).
    pool : int
        Window side length.
    stride : int
        Window stride.

    Returns
    -------
    np.ndarray
        Output of shape (N, C, H_out, W_out).
    """
    N, C, H, W = x.shape
    H_out = pool_output_size(H, pool, stride)
    W_out = pool_output_size(W, pool, stride)
    y = np.empty((N, C, H_out, W_out), dtype=x.dtype)
    if y.size == 0:
        return y

    def _image(n: int) -> None:
        best = np.full((C, H_out, W_out), -np.inf, dtype=x.dtype)
        for ph in range(pool):
            for pw in range(pool):
                np.maximum(best, _window(x[n], ph, pw, stride, H_out, W_out), out=best)
        y[n] = best

    parallel_for(N, _image)
    return y


def maxpool2d_backward_cpu(
    x: np.ndarray, grad: np.ndarray, pool: int, stride: int
) -> np.ndarray:
    """
    Compute the backward pass of 2D max pooling.

    Parameters
    ----------
    x : np.ndarray
        Cached forward input (N, C, H, W).
    grad : np.ndarray
        Output gradient (N, C, H_out, W_out).
    pool : int
        Window side length.
    stride : int
        Window stride.

    Returns
    -------
    np.ndarray
        Input gradient (N, C, H, W).
    """
    N, C, H, W = x.shape
    _, _, H_out, W_out = grad.shape
    dx = np.zeros_like(x, dtype=grad.dtype)
    if grad.size == 0:
        return dx

    oh = np.arange(H_out).reshape(1, H_out, 1) * stride
    ow = np.arange(W_out).reshape(1, 1, W_out) * stride
    ch = np.arange(C).reshape(C, 1, 1)

    def _image(n: int) -> None:
        running = np.full((C, H_out, W_out), -np.inf, dtype=x.dtype)
        arg_h = np.zeros((C, H_out, W_out), dtype=np.intp)
        arg_w = np.zeros((C, H_out, W_out), dtype=np.intp)
        for ph in range(pool):
            for pw in range(pool):
                v = _window(x[n], ph, pw, stride, H_out, W_out)
                better = v > running
                running = np.where(better, v, running)
                arg_h[better] = ph
                arg_w[better] = pw
        rows = np.broadcast_to(oh + arg_h, arg_h.shape)
        cols = np.broadcast_to(ow + arg_w, arg_w.shape)
        chans = np.broadcast_to(ch, arg_h.shape)
        np.add.at(dx[n], (chans, rows, cols), grad[n])

    parallel_for(N, _image)
    return dx


def global_avgpool2d_forward_cpu(x: np.ndarray) -> np.ndarray:
    """
    Average every spatial position per (image, channel).

    Returns
    -------
    np.ndarray
        Output of shape (N, C, 1, 1).
    """
    N, C, _, _ = x.shape
    y = np.empty((N, C, 1, 1), dtype=x.dtype)

    def _image(n: int) -> None:
        y[n, :, 0, 0] = x[n].mean(axis=(1, 2))

    parallel_for(N, _image)
    return y


def global_avgpool2d_backward_cpu(grad: np.ndarray, in_hw: tuple[int, int]) -> np.ndarray:
    """
    Spread `grad / (H * W)` uniformly over every spatial position.

    Parameters
    ----------
    grad : np.ndarray
        Output gradient (N, C, 1, 1).
    in_hw : tuple[int, int]
        Spatial extent (H, W) of the forward input.
    """
    N, C = grad.shape[:2]
    H, W = in_hw
    dx = np.empty((N, C, H, W), dtype=grad.dtype)
    scale = 1.0 / float(H * W) if H * W else 0.0

    def _image(n: int) -> None:
        dx[n] = grad[n] * scale

    parallel_for(N, _image)
    return dx
