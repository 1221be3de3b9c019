"""Batched id-set lookups.

Some stores cap how many values an ``in`` filter may carry. Callers split
their id lists with these helpers so a backend without the cap loses nothing
and a backend with it never sees an oversized query.
"""

import logging
from typing import Callable, Iterable, Iterator, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_BATCH_SIZE = 30


def chunked(items: Sequence[T], size: int = DEFAULT_BATCH_SIZE) -> Iterator[list[T]]:
    """Yield consecutive slices of at most ``size`` items.

    Raises:
        ValueError: If size is not positive
    """
    if size <= 0:
        raise ValueError(f"Batch size must be positive, got {size}")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def batched_lookup(
    ids: Iterable[str],
    lookup: Callable[[list[str]], Iterable[R]],
    size: int = DEFAULT_BATCH_SIZE,
) -> list[R]:
    """Run ``lookup`` over de-duplicated ids in batches and concatenate the results.

    Args:
        ids: Ids to look up (order preserved, duplicates dropped)
        lookup: Function accepting one batch of ids
        size: Maximum ids per batch

    Returns:
        Combined results of every batch
    """
    unique = list(dict.fromkeys(i for i in ids if i))
    results: list[R] = []
    for batch in chunked(unique, size):
        logger.debug("Looking up %d ids in batch", len(batch))
        results.extend(lookup(batch))
    return results
