"""Batch partitioning for appbatch.

Candidates are installed in fixed-size groups. :func:`chunk` is the
order-preserving partition; :func:`make_batches` wraps each group in a
:class:`~appbatch.models.job.Batch` carrying its position in the run.
"""

from __future__ import annotations

from typing import List, Sequence, TypeVar

from appbatch.models.job import Batch
from appbatch.models.candidate import VersionCandidate

T = TypeVar("T")


def chunk(items: Sequence[T], size: int) -> List[List[T]]:
    """Split ``items`` into consecutive groups of ``size``.

    Every group has exactly ``size`` items except possibly the last.
    Concatenating the groups yields ``items`` in the original order.

    Raises:
        ValueError: ``size`` is less than 1.

    Example::

        >>> chunk([1, 2, 3, 4, 5], 2)
        [[1, 2], [3, 4], [5]]
    """
    if size < 1:
        raise ValueError(f"chunk size must be at least 1, got {size}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def make_batches(candidates: Sequence[VersionCandidate], size: int) -> List[Batch]:
    """Group ``candidates`` into numbered batches of ``size``."""
    groups = chunk(candidates, size)
    return [
        Batch(index=number, total=len(groups), candidates=tuple(group))
        for number, group in enumerate(groups, start=1)
    ]
