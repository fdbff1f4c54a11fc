"""Fractional positions for columns and cards.

A position is a float; rendering sorts ascending by it. Inserting between two
neighbours takes their midpoint, so nothing else has to move. Repeated
inserts into the same gap halve it each time and after roughly 50 of them
the midpoint rounds onto one of the neighbours: two rows then share an
``order`` and only the tie-break in :func:`sort_key` separates them. Nothing
runs :func:`renumber` automatically, so callers must never treat ``order`` as
unique.
"""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional, Protocol, Sequence

from .utils import as_utc


class Positioned(Protocol):
    id: str
    order: float
    created_at: datetime


def compute_order(prev_order: Optional[float], next_order: Optional[float]) -> float:
    """Return a position for an entry placed between ``prev_order`` and ``next_order``.

    Either neighbour may be ``None``: at the end of the sequence the result is
    ``prev + 1``, at the start ``next - 1``, and in an empty sequence ``1``.
    """
    if prev_order is not None and next_order is not None:
        return (prev_order + next_order) / 2
    if prev_order is not None:
        return prev_order + 1
    if next_order is not None:
        return next_order - 1
    return 1.0


def sort_key(entry: Positioned) -> tuple:
    return (entry.order, as_utc(entry.created_at), entry.id)


def in_order(entries: Iterable[Positioned]) -> list:
    return sorted(entries, key=sort_key)


def has_room(prev_order: float, next_order: float) -> bool:
    """True while the midpoint still lands strictly between the two neighbours."""
    mid = compute_order(prev_order, next_order)
    return prev_order < mid < next_order


def order_between(
    entries: Sequence[Positioned],
    prev_id: Optional[str],
    next_id: Optional[str],
) -> float:
    """Compute a position from neighbour ids looked up in ``entries``.

    Raises ``KeyError`` for an id that is not among ``entries``.
    """
    lookup = {e.id: e for e in entries}
    left = lookup[prev_id].order if prev_id else None
    right = lookup[next_id].order if next_id else None
    return compute_order(left, right)


def renumber(entries: Iterable[Positioned]) -> list[tuple[Positioned, float]]:
    """Pair each entry, in render order, with an evenly spaced position 1, 2, 3..."""
    return [(entry, float(i)) for i, entry in enumerate(in_order(entries), start=1)]
