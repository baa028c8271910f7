"""Task group with a join barrier.

Per-product analyses are pure functions over one immutable snapshot, so
they run side by side on a thread pool. Every helper here waits for all
tasks before returning; results come back in input order regardless of
completion order. If any task failed, the first failure (in input
order) is re-raised after the barrier.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Mapping, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")

logger = logging.getLogger("insight.fanout")


def fan_out(
    fn: Callable[[T], R],
    items: Sequence[T],
    max_workers: int = 8,
) -> list[R]:
    """Apply ``fn`` to every item concurrently and join.

    Args:
        fn: Pure per-item function.
        items: Inputs.
        max_workers: Thread pool size.

    Returns:
        ``[fn(item) for item in items]`` in input order.
    """
    if not items:
        return []

    results: list = [None] * len(items)
    errors: dict[int, BaseException] = {}

    with ThreadPoolExecutor(max_workers=min(max_workers, len(items))) as executor:
        futures = {executor.submit(fn, item): idx for idx, item in enumerate(items)}
        for future in as_completed(futures):
            idx = futures[future]
            try:
                results[idx] = future.result()
            except Exception as e:
                errors[idx] = e

    if errors:
        first = min(errors)
        logger.debug("%d of %d tasks failed; re-raising task %d", len(errors), len(items), first)
        raise errors[first]
    return results


def run_parallel(
    tasks: Mapping[str, Callable[[], R]],
    max_workers: int = 8,
) -> dict[str, R]:
    """Run named zero-argument tasks concurrently and join.

    Usage:
        joined = run_parallel({"pattern": lambda: ..., "prediction": lambda: ...})
        joined["pattern"]
    """
    names = list(tasks)
    values = fan_out(lambda name: tasks[name](), names, max_workers)
    return dict(zip(names, values))
