"""
Process-wide reproducible randomness.

A single root seed is combined with a *stream* index (one per random request,
e.g. one parameter initialization or one dropout mask) and a *chunk* index
(one per parallel task inside that request). Each `(root, stream, chunk)`
triple seeds its own `numpy.random.Generator`, so:

- no generator is ever shared between concurrent tasks;
- the values depend only on the root seed, the order of requests, and the
  fixed chunk size, never on how many worker threads execute the chunks.

Calling `set_seed` rewinds the stream counter, so a process that sets the same
seed and performs the same sequence of requests gets bit-identical results.
"""

from __future__ import annotations

import itertools
import threading
from typing import Callable, Optional

import numpy as np

from .._parallel import parallel_chunks

RANDOM_CHUNK = 4096
"""Default number of elements drawn per task."""

_lock = threading.Lock()
_root_seed: int = int(np.random.SeedSequence().entropy % (2**63))
_streams = itertools.count()


def set_seed(seed: int) -> None:
    """
    Set the process-wide root seed and rewind the stream counter.

    Parameters
    ----------
    seed : int
        Non-negative integer seed.

    Raises
    ------
    ValueError
        If `seed` is negative.
    """
    global _root_seed, _streams
    seed = int(seed)
    if seed < 0:
        raise ValueError(f"seed must be non-negative, got {seed}")
    with _lock:
        _root_seed = seed
        _streams = itertools.count()


def get_seed() -> int:
    """Return the current root seed."""
    return _root_seed


def next_stream() -> int:
    """Reserve and return the next stream index."""
    with _lock:
        return next(_streams)


def derive_generator(stream: int, index: int) -> np.random.Generator:
    """
    Return an independent generator for chunk `index` of `stream`.

    The generator is keyed by `(root_seed, stream, index)` through
    `numpy.random.SeedSequence`, which mixes the entropy words so that
    neighbouring indices yield statistically independent sequences.
    """
    seq = np.random.SeedSequence([_root_seed, int(stream), int(index)])
    return np.random.Generator(np.random.PCG64(seq))


def _generate(
    total: int,
    dtype: np.dtype,
    draw: Callable[[np.random.Generator, int], np.ndarray],
    chunk: int,
    stream: Optional[int],
) -> np.ndarray:
    if stream is None:
        stream = next_stream()
    out = np.empty(total, dtype=dtype)

    def _fill(start: int, stop: int) -> None:
        rng = derive_generator(stream, start // chunk)
        out[start:stop] = draw(rng, stop - start)

    parallel_chunks(total, chunk, _fill)
    return out


def uniform_array(
    total: int,
    low: float = 0.0,
    high: float = 1.0,
    *,
    dtype=np.float32,
    chunk: int = RANDOM_CHUNK,
    stream: Optional[int] = None,
) -> np.ndarray:
    """
    Draw `total` values from U[low, high) as a flat array.

    Parameters
    ----------
    total : int
        Number of values.
    low, high : float
        Interval bounds.
    dtype : numpy dtype
        Output dtype.
    chunk : int
        Number of values drawn per task (fixes the chunk-to-generator mapping).
    stream : int | None
        Explicit stream index; a fresh one is reserved when omitted.
    """
    return _generate(
        total,
        np.dtype(dtype),
        lambda rng, n: rng.uniform(low, high, n),
        chunk,
        stream,
    )


def normal_array(
    total: int,
    mean: float = 0.0,
    std: float = 1.0,
    *,
    dtype=np.float32,
    chunk: int = RANDOM_CHUNK,
    stream: Optional[int] = None,
) -> np.ndarray:
    """Draw `total` values from N(mean, std**2) as a flat array."""
    return _generate(
        total,
        np.dtype(dtype),
        lambda rng, n: rng.normal(mean, std, n),
        chunk,
        stream,
    )
