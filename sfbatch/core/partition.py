"""Batch partitioning"""

from typing import List, Sequence, TypeVar

T = TypeVar("T")


def partition(records: Sequence[T], batch_size: int) -> List[List[T]]:
    """
    Split records into ordered batches of at most batch_size.

    Args:
        records: Ordered records
        batch_size: Maximum records per batch (>= 1)

    Returns:
        Batches in input order; only the last one may be short.
        An empty input yields no batches.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")

    return [
        list(records[start:start + batch_size])
        for start in range(0, len(records), batch_size)
    ]
