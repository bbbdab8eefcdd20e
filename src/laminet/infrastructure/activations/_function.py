"""
Pointwise activation functions and their derivatives.

Each class implements `ElementwiseFunction` on numpy slices. Derivatives
that are cheap to express in terms of the activation output (sigmoid, tanh,
ReLU, LeakyReLU) cache the output; the others (GELU, Mish, Swish) cache the
input.
"""

from __future__ import annotations

import math

import numpy as np

from ...domain._function import ElementwiseFunction

# Abramowitz & Stegun 7.1.26, |error| <= 1.5e-7
_ERF_P = 0.3275911
_ERF_A1 = 0.254829592
_ERF_A2 = -0.284496736
_ERF_A3 = 1.421413741
_ERF_A4 = -1.453152027
_ERF_A5 = 1.061405429

_INV_SQRT2 = 1.0 / math.sqrt(2.0)
_INV_SQRT_2PI = 1.0 / math.sqrt(2.0 * math.pi)


def erf(x: np.ndarray) -> np.ndarray:
    """Rational approximation of the error function."""
    sign = np.sign(x)
    a = np.abs(x)
    t = 1.0 / (1.0 + _ERF_P * a)
    poly = ((((_ERF_A5 * t + _ERF_A4) * t + _ERF_A3) * t + _ERF_A2) * t + _ERF_A1) * t
    return sign * (1.0 - poly * np.exp(-a * a))


def _sigmoid(x: np.ndarray) -> np.ndarray:
    # tanh form avoids overflow in exp for large |x|
    return 0.5 * (1.0 + np.tanh(0.5 * x))


class SigmoidFn(ElementwiseFunction):
    """
    sigmoid(x) = 1 / (1 + exp(-x));  d/dx = y * (1 - y)
    """

    SAVES = "output"

    def forward(self, x: np.ndarray) -> np.ndarray:
        return _sigmoid(x)

    def backward(self, saved: np.ndarray, grad: np.ndarray) -> np.ndarray:
        return grad * saved * (1.0 - saved)


class TanhFn(ElementwiseFunction):
    """
    tanh(x);  d/dx = 1 - y**2
    """

    SAVES = "output"

    def forward(self, x: np.ndarray) -> np.ndarray:
        return np.tanh(x)

    def backward(self, saved: np.ndarray, grad: np.ndarray) -> np.ndarray:
        return grad * (1.0 - saved * saved)


class ReLUFn(ElementwiseFunction):
    """
    max(0, x);  d/dx = 1 where y > 0, else 0
    """

    SAVES = "output"

    def forward(self, x: np.ndarray) -> np.ndarray:
        return np.maximum(x, 0.0)

    def backward(self, saved: np.ndarray, grad: np.ndarray) -> np.ndarray:
        return grad * (saved > 0.0)


class LeakyReLUFn(ElementwiseFunction):
    """
    x if x > 0 else alpha * x;  d/dx = 1 where y > 0, else alpha

    Parameters
    ----------
    alpha : float
        Slope for negative inputs. Must be non-negative so the sign of the
        output identifies the branch.
    """

    SAVES = "output"

    def __init__(self, alpha: float = 0.01) -> None:
        if alpha < 0.0:
            raise ValueError(f"LeakyReLU alpha must be non-negative, got {alpha}")
        self.alpha = float(alpha)

    def forward(self, x: np.ndarray) -> np.ndarray:
        return np.where(x > 0.0, x, self.alpha * x)

    def backward(self, saved: np.ndarray, grad: np.ndarray) -> np.ndarray:
        return grad * np.where(saved > 0.0, 1.0, self.alpha)


class GELUFn(ElementwiseFunction):
    """
    x * Phi(x) with Phi(x) = 0.5 * (1 + erf(x / sqrt(2)));

    d/dx = Phi(x) + x * exp(-x**2 / 2) / sqrt(2 * pi)
    """

    SAVES = "input"

    def forward(self, x: np.ndarray) -> np.ndarray:
        return 0.5 * x * (1.0 + erf(x * _INV_SQRT2))

    def backward(self, saved: np.ndarray, grad: np.ndarray) -> np.ndarray:
        cdf = 0.5 * (1.0 + erf(saved * _INV_SQRT2))
        pdf = np.exp(-0.5 * saved * saved) * _INV_SQRT_2PI
        return grad * (cdf + saved * pdf)


class MishFn(ElementwiseFunction):
    """
    x * tanh(softplus(x));

    d/dx = tanh(sp) + x * (1 - tanh(sp)**2) * sigmoid(x)
    """

    SAVES = "input"

    def forward(self, x: np.ndarray) -> np.ndarray:
        return x * np.tanh(np.logaddexp(0.0, x))

    def backward(self, saved: np.ndarray, grad: np.ndarray) -> np.ndarray:
        t = np.tanh(np.logaddexp(0.0, saved))
        return grad * (t + saved * (1.0 - t * t) * _sigmoid(saved))


class SwishFn(ElementwiseFunction):
    """
    x * sigmoid(x);  d/dx = s + x * s * (1 - s)
    """

    SAVES = "input"

    def forward(self, x: np.ndarray) -> np.ndarray:
        return x * _sigmoid(x)

    def backward(self, saved: np.ndarray, grad: np.ndarray) -> np.ndarray:
        s = _sigmoid(saved)
        return grad * (s + saved * s * (1.0 - s))
