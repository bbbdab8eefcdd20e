"""
Gradient clipping helpers.

Two policies are used by the layers:

- absolute L2 clipping (`clip_by_l2_norm`): the gradient is uniformly
  rescaled so its norm does not exceed a fixed ceiling. Used by Conv2D.
- adaptive clipping (`adaptive_clip`): the ceiling is
  `max(grad_norm, epsilon * param_norm)`, so it scales with the parameter's
  own magnitude and never shrinks a gradient already below it. Used by Dense.

Both operate in-place on a `Tensor` and return the norm measured before
clipping.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..tensor._tensor import Tensor

logger = logging.getLogger(__name__)


def clip_by_l2_norm(grad: Tensor, max_norm: Optional[float]) -> float:
    """
    Rescale `grad` in-place so that its L2 norm is at most `max_norm`.

    Parameters
    ----------
    grad : Tensor
        Gradient to clip.
    max_norm : float | None
        Ceiling. `None` disables clipping.

    Returns
    -------
    float
        Norm before clipping.
    """
    norm = grad.l2_norm()
    if max_norm is not None and norm > max_norm > 0.0:
        grad.scale_(max_norm / norm)
        logger.debug("clipped gradient %s from %.6g to %.6g", grad.shape, norm, max_norm)
    return norm


def adaptive_clip(grad: Tensor, param: Tensor, epsilon: float) -> float:
    """
    Rescale `grad` in-place when its norm exceeds the adaptive ceiling
    `max(grad_norm, epsilon * param_norm)`.

    Parameters
    ----------
    grad : Tensor
        Gradient to clip.
    param : Tensor
        Parameter the gradient belongs to.
    epsilon : float
        Relative ceiling factor.

    Returns
    -------
    float
        Norm before clipping.
    """
    grad_norm = grad.l2_norm()
    ceiling = max(grad_norm, epsilon * param.l2_norm())
    if grad_norm > ceiling > 0.0:
        grad.scale_(ceiling / grad_norm)
        logger.debug(
            "adaptively clipped gradient %s from %.6g to %.6g",
            grad.shape,
            grad_norm,
            ceiling,
        )
    return grad_norm
