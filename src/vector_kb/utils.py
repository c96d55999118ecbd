"""Small helpers shared by the pipelines and backend adapters."""

from collections.abc import Sequence
from typing import TypeVar

T = TypeVar("T")


def partition(items: Sequence[T], size: int) -> list[list[T]]:
    """Split ``items`` into contiguous slices of at most ``size`` elements.

    Order is preserved and every item lands in exactly one slice.

    Example:
        >>> partition([1, 2, 3, 4, 5], 2)
        [[1, 2], [3, 4], [5]]
    """
    if size < 1:
        raise ValueError(f"size must be positive, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]
