"""
Output layout tags exchanged between neighbouring layers.

Every layer stamps an `OutputFormat` on its own output when it is built.
The successor reads that tag to decide whether the tensor it receives is
stored batch-major (the logical `(N, C, H, W)` order) or feature-major
(`(C*H*W, N, 1, 1)`, as produced by dense layers). Successors never inspect
the type of the layer in front of them.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


BATCH_SENTINEL = -1
"""Placeholder used in logical shapes for a batch size that is not yet known."""


class Layout(Enum):
    """
    Physical arrangement of a layer's output buffer.

    Members
    -------
    CHANNEL_MAJOR
        Buffer matches the logical shape `(N, C, H, W)`.
    FEATURE_MAJOR
        Buffer holds the transpose of the flattened logical shape, i.e.
        `(C*H*W, N, 1, 1)`. Dense layers produce this layout.
    """

    CHANNEL_MAJOR = "channel_major"
    FEATURE_MAJOR = "feature_major"


@dataclass(frozen=True)
class OutputFormat:
    """
    Format tag a layer stamps on its output at build time.

    Attributes
    ----------
    layout : Layout
        Physical arrangement of the output buffer.
    spatial : bool
        True when the output is a stack of convolutional feature maps. Used
        to select per-channel ("spatial") dropout masks.
    """

    layout: Layout = Layout.CHANNEL_MAJOR
    spatial: bool = False

    @property
    def is_feature_major(self) -> bool:
        return self.layout is Layout.FEATURE_MAJOR


CHANNEL_MAJOR = OutputFormat(Layout.CHANNEL_MAJOR, spatial=False)
FEATURE_MAJOR = OutputFormat(Layout.FEATURE_MAJOR, spatial=False)
SPATIAL = OutputFormat(Layout.CHANNEL_MAJOR, spatial=True)


def physical_shape(
    logical: tuple[int, int, int, int], layout: Layout
) -> tuple[int, int, int, int]:
    """
    Map a logical batch-major shape to the shape actually stored in a buffer.

    Parameters
    ----------
    logical : tuple[int, int, int, int]
        Logical shape `(N, C, H, W)` with a concrete batch size.
    layout : Layout
        Layout of the buffer.

    Returns
    -------
    tuple[int, int, int, int]
        `logical` for channel-major buffers, `(C*H*W, N, 1, 1)` for
        feature-major buffers.
    """
    n, c, h, w = logical
    if layout is Layout.FEATURE_MAJOR:
        return (c * h * w, n, 1, 1)
    return (n, c, h, w)
