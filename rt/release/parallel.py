"""Bounded fan-out over independent repositories."""

from __future__ import annotations

import os
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed

__all__ = ["default_workers", "run_parallel"]


def default_workers(n_items: int) -> int:
    """One worker per item, capped at the number of CPU threads."""
    return max(1, min(n_items, os.cpu_count() or 1))


def run_parallel[T, R](
    items: Sequence[T],
    fn: Callable[[T], R],
    *,
    max_workers: int | None = None,
) -> list[R]:
    """Apply ``fn`` to every item on a thread pool; results keep input order.

    Exceptions raised by ``fn`` propagate to the caller.
    """
    if not items:
        return []

    results: dict[int, R] = {}
    with ThreadPoolExecutor(max_workers=max_workers or default_workers(len(items))) as executor:
        futures = {executor.submit(fn, item): index for index, item in enumerate(items)}
        for future in as_completed(futures):
            results[futures[future]] = future.result()

    return [results[i] for i in range(len(items))]
