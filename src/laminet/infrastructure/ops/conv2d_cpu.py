"""
CPU Conv2D kernels for laminet.

Forward and the three backward passes (bias, filter, input) of a square
2-D convolution over NCHW numpy arrays. Every kernel fans its work out on
the shared thread pool and writes disjoint output regions per task.

Padding
-------
Padding is given as explicit `(top, bottom, left, right)` amounts, so the
asymmetric split produced by "same" padding (extra row/column at the
bottom/right) is represented exactly. Padded positions behave as zeros:
the forward pass never reads real data outside the input, the filter pass
multiplies the gradient by zeros there, and the input pass skips them.

Tensor layout
-------------
- x : (N, C, H, W)
- w : (F, C, K, K)
- b : (F,)
- y : (N, F, H_out, W_out)
"""

from __future__ import annotations

import math
from typing import Tuple

import numpy as np

from .._parallel import get_num_workers, parallel_for

Padding4 = Tuple[int, int, int, int]

INPUT_GRAD_TILE = 32
"""Side length of the square spatial tiles used by the input-gradient pass."""


def conv_output_size(in_size: int, kernel: int, stride: int, padding: str) -> int:
    """
    Output extent along one spatial axis.

    - "valid": `(in - k) // stride + 1` (0 if the kernel does not fit)
    - "same":  `ceil(in / stride)`

    Unknown extents (negative `in_size`) propagate as -1.
    """
    if in_size < 0:
        return -1
    if padding == "same":
        return int(math.ceil(in_size / stride))
    if in_size < kernel:
        return 0
    return (in_size - kernel) // stride + 1


def same_padding(in_size: int, kernel: int, stride: int) -> Tuple[int, int]:
    """
    Split the "same" padding along one axis into `(before, after)`.

    `total = max(0, (out - 1) * stride + kernel - in)`; the smaller half goes
    before (top/left), the remainder after (bottom/right).
    """
    out = conv_output_size(in_size, kernel, stride, "same")
    total = max(0, (out - 1) * stride + kernel - in_size)
    before = total // 2
    return before, total - before


def pad_input(x: np.ndarray, padding: Padding4) -> np.ndarray:
    """Zero-pad the spatial axes of `x` by `(top, bottom, left, right)`."""
    top, bottom, left, right = padding
    if not (top or bottom or left or right):
        return x
    return np.pad(x, ((0, 0), (0, 0), (top, bottom), (left, right)), mode="constant")


def conv2d_forward_cpu(
    x_pad: np.ndarray,
    w: np.ndarray,
    b: np.ndarray,
    stride: int,
    out_hw: Tuple[int, int],
) -> np.ndarray:
    """
    Compute the forward pass of a 2D convolution.

    Parameters
    ----------
    x_pad : np.ndarray
        Padded input of shape (N, C, H_pad, W_pad).
    w : np.ndarray
        Filters of shape (F, C, K, K).
    b : np.ndarray
        Biases of shape (F,).
    stride : int
        Stride along both spatial axes.
    out_hw : tuple[int, int]
        Output extent (H_out, W_out).

    Returns
    -------
    np.ndarray
        Output of shape (N, F, H_out, W_out).

    Notes
    -----
    When the batch is small relative to the pool (`N <= workers // 2`),
    images are processed one after the other and the filters of each image
    are fanned out; otherwise whole images are fanned out and each task
    iterates over the filters. Both schedules produce identical results.
    """
    N, C, _, _ = x_pad.shape
    F, C2, K, _ = w.shape
    if C != C2:
        raise ValueError(f"in_channels mismatch: x has {C}, filters have {C2}")
    H_out, W_out = out_hw
    y = np.empty((N, F, H_out, W_out), dtype=x_pad.dtype)
    if y.size == 0:
        return y

    h_span = stride * (H_out - 1) + 1
    w_span = stride * (W_out - 1) + 1

    def _one(n: int, f: int) -> None:
        acc = np.full((H_out, W_out), b[f], dtype=y.dtype)
        img = x_pad[n]
        for fh in range(K):
            for fw in range(K):
                patch = img[:, fh : fh + h_span : stride, fw : fw + w_span : stride]
                acc += np.tensordot(w[f, :, fh, fw], patch, axes=(0, 0))
        y[n, f] = acc

    if N <= get_num_workers() // 2:
        for n in range(N):
            parallel_for(F, lambda f, n=n: _one(n, f))
    else:

        def _image(n: int) -> None:
            for f in range(F):
                _one(n, f)

        parallel_for(N, _image)
    return y


def conv2d_backward_bias_cpu(grad: np.ndarray) -> np.ndarray:
    """
    Bias gradient: sum of the output gradient over images and positions.

    Parameters
    ----------
    grad : np.ndarray
        Output gradient (N, F, H_out, W_out).

    Returns
    -------
    np.ndarray
        Gradient of shape (F,).
    """
    F = grad.shape[1]
    db = np.empty(F, dtype=grad.dtype)

    def _filter(f: int) -> None:
        db[f] = grad[:, f].sum()

    parallel_for(F, _filter)
    return db


def conv2d_backward_filter_cpu(
    x_pad: np.ndarray, grad: np.ndarray, kernel: int, stride: int
) -> np.ndarray:
    """
    Filter gradient.

    For every filter `f`, channel `c` and kernel offset `(fh, fw)`:

        dW[f, c, fh, fw] = sum_{n, oh, ow} x_pad[n, c, oh*s + fh, ow*s + fw]
                                           * grad[n, f, oh, ow]

    Positions that fall in the padding read zeros, which is equivalent to
    skipping out-of-bounds input positions.

    Returns
    -------
    np.ndarray
        Gradient of shape (F, C, K, K).
    """
    N, C, _, _ = x_pad.shape
    _, F, H_out, W_out = grad.shape
    dw = np.zeros((F, C, kernel, kernel), dtype=grad.dtype)
    if grad.size == 0:
        return dw

    h_span = stride * (H_out - 1) + 1
    w_span = stride * (W_out - 1) + 1

    def _filter(f: int) -> None:
        g = grad[:, f]
        for fh in range(kernel):
            for fw in range(kernel):
                patch = x_pad[:, :, fh : fh + h_span : stride, fw : fw + w_span : stride]
                dw[f, :, fh, fw] = np.einsum("nchw,nhw->c", patch, g)

    parallel_for(F, _filter)
    return dw


def conv2d_backward_input_cpu(
    grad: np.ndarray,
    w: np.ndarray,
    in_hw: Tuple[int, int],
    stride: int,
    pad_top: int,
    pad_left: int,
    tile: int = INPUT_GRAD_TILE,
) -> np.ndarray:
    """
    Input gradient, computed per (image, channel, spatial tile).

    For an input position `(ih, iw)` and kernel offset `(fh, fw)` the forward
    mapping is `ih + pad_top = oh * stride + fh`. Solving for `oh` gives
    `oh = (ih + pad_top - fh) / stride`; the contribution is skipped when the
    numerator is negative, not an exact multiple of the stride, or yields
    `oh >= H_out` (same for the width axis). Then

        dX[n, c, ih, iw] = sum_{f, fh, fw} w[f, c, fh, fw] * grad[n, f, oh, ow]

    Each task owns one disjoint tile of `dX`, so no synchronization is needed
    even when windows overlap (stride < kernel).

    Returns
    -------
    np.ndarray
        Gradient of shape (N, C, H, W).
    """
    N, F, H_out, W_out = grad.shape
    _, C, K, _ = w.shape
    H, W = in_hw
    dx = np.zeros((N, C, H, W), dtype=grad.dtype)
    if dx.size == 0 or grad.size == 0:
        return dx

    tiles_h = (H + tile - 1) // tile
    tiles_w = (W + tile - 1) // tile
    per_image = C * tiles_h * tiles_w

    def _routing(start: int, stop: int, pad: int, k_off: int, out_len: int):
        num = np.arange(start, stop) + pad - k_off
        valid = (num >= 0) & (num % stride == 0) & (num // stride < out_len)
        local = np.nonzero(valid)[0]
        return local, num[local] // stride

    def _tile(task: int) -> None:
        n, rem = divmod(task, per_image)
        c, rem = divmod(rem, tiles_h * tiles_w)
        th, tw = divmod(rem, tiles_w)
        h0, h1 = th * tile, min(H, (th + 1) * tile)
        w0, w1 = tw * tile, min(W, (tw + 1) * tile)

        acc = np.zeros((h1 - h0, w1 - w0), dtype=dx.dtype)
        g = grad[n]
        for fh in range(K):
            rows, oh = _routing(h0, h1, pad_top, fh, H_out)
            if rows.size == 0:
                continue
            for fw in range(K):
                cols, ow = _routing(w0, w1, pad_left, fw, W_out)
                if cols.size == 0:
                    continue
                routed = g[:, oh[:, None], ow[None, :]]
                acc[np.ix_(rows, cols)] += np.tensordot(
                    w[:, c, fh, fw], routed, axes=(0, 0)
                )
        dx[n, c, h0:h1, w0:w1] = acc

    parallel_for(N * per_image, _tile)
    return dx
