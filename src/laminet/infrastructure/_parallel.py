"""
Thread-pool fan-out helpers shared by all CPU kernels.

Kernels partition their work into disjoint index ranges (per image, per
filter, per channel, per spatial tile, per random chunk) and hand each range
to `parallel_for` / `parallel_chunks`. Every call blocks until all tasks have
finished, so layers never overlap in time; only the work *inside* one kernel
runs concurrently.

The pool is a single module-level `ThreadPoolExecutor` sized from
`os.cpu_count()`. numpy releases the GIL inside its vectorized loops, so
threads give real parallelism for the slice-level work the kernels submit.

Notes
-----
- Tasks must write disjoint regions of their output buffers; no locking is
  performed on behalf of the caller.
- A task that itself calls `parallel_for` runs the inner loop inline, so a
  saturated pool can never deadlock on nested submissions.
- The first exception raised by any task is re-raised in the caller once
  every task has finished.
"""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_executor: Optional[ThreadPoolExecutor] = None
_num_workers: int = max(1, os.cpu_count() or 1)
_worker_state = threading.local()


def get_num_workers() -> int:
    """Return the number of worker threads used by kernels."""
    return _num_workers


def set_num_workers(num_workers: Optional[int] = None) -> None:
    """
    Resize the kernel thread pool.

    Parameters
    ----------
    num_workers : int | None
        Number of worker threads. `None` restores the default
        (`os.cpu_count()`). A value of 1 runs every kernel inline.

    Raises
    ------
    ValueError
        If `num_workers` is smaller than 1.
    """
    global _executor, _num_workers

    if num_workers is None:
        num_workers = max(1, os.cpu_count() or 1)
    if int(num_workers) < 1:
        raise ValueError(f"num_workers must be >= 1, got {num_workers}")

    with _lock:
        old = _executor
        _executor = None
        _num_workers = int(num_workers)
    if old is not None:
        old.shutdown(wait=True)
    logger.debug("kernel thread pool resized to %d workers", _num_workers)


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    with _lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(
                max_workers=_num_workers, thread_name_prefix="laminet"
            )
        return _executor


def _run_marked(fn: Callable[[int], None], index: int) -> None:
    _worker_state.active = True
    try:
        fn(index)
    finally:
        _worker_state.active = False


def parallel_for(count: int, fn: Callable[[int], None]) -> None:
    """
    Run `fn(i)` for every `i` in `range(count)` on the kernel pool.

    Parameters
    ----------
    count : int
        Number of tasks.
    fn : Callable[[int], None]
        Task body. Must only write to the output region owned by index `i`.
    """
    if count <= 0:
        return

    inline = (
        count == 1 or _num_workers == 1 or getattr(_worker_state, "active", False)
    )
    if inline:
        for i in range(count):
            fn(i)
        return

    executor = _get_executor()
    futures: List[Future] = [executor.submit(_run_marked, fn, i) for i in range(count)]

    first_error: Optional[BaseException] = None
    for fut in futures:
        err = fut.exception()
        if err is not None and first_error is None:
            first_error = err
    if first_error is not None:
        raise first_error


def parallel_chunks(total: int, chunk: int, fn: Callable[[int, int], None]) -> None:
    """
    Split `range(total)` into consecutive chunks and run `fn(start, stop)`
    for each of them on the kernel pool.

    Chunk boundaries depend only on `total` and `chunk`, never on the number
    of workers.
    """
    if chunk < 1:
        raise ValueError(f"chunk must be >= 1, got {chunk}")
    n_chunks = (total + chunk - 1) // chunk

    def _task(i: int) -> None:
        start = i * chunk
        fn(start, min(total, start + chunk))

    parallel_for(n_chunks, _task)
