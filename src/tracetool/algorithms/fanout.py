"""Per-group fan-out / fan-in.

Groups are independent, so per-group work may run on a thread pool. Results
are always returned in ascending key order, never in completion order, so the
worker count cannot change the output.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Hashable, Mapping, TypeVar

from tracetool.utils.logging import get_logger

logger = get_logger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")
R = TypeVar("R")


def fan_out(
    func: Callable[[K, V], R],
    items_by_key: Mapping[K, V],
    *,
    max_workers: int = 1,
) -> list[tuple[K, R]]:
    """Apply func(key, value) to every item; return [(key, result)] sorted by key.

    With max_workers <= 1 (or a single item) the calls run inline. Exceptions
    raised by func propagate to the caller.
    """
    keys = sorted(items_by_key)
    if max_workers <= 1 or len(keys) <= 1:
        return [(k, func(k, items_by_key[k])) for k in keys]

    logger.debug(f"Fanning out {len(keys)} groups over {max_workers} workers")
    with ThreadPoolExecutor(max_workers=min(max_workers, len(keys))) as ex:
        futures = {k: ex.submit(func, k, items_by_key[k]) for k in keys}
        return [(k, futures[k].result()) for k in keys]
