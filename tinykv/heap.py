"""Binary min-heap whose items keep their owners informed of their position.

Each item's ``ref`` is an object with a ``heap_idx`` attribute, rewritten
whenever the item moves, so that the owner can update or remove it later.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List


@dataclass
class HeapItem:
    """A heap entry ordered by ``val``."""

    val: int = 0
    ref: Any = None


def parent(i: int) -> int:
    """Index of the parent of ``i``."""
    return (i + 1) // 2 - 1


def left(i: int) -> int:
    """Index of the left child of ``i``."""
    return i * 2 + 1


def right(i: int) -> int:
    """Index of the right child of ``i``."""
    return i * 2 + 2


def _place(heap: List[HeapItem], pos: int, item: HeapItem) -> None:
    heap[pos] = item
    item.ref.heap_idx = pos


def _up(heap: List[HeapItem], pos: int) -> None:
    item = heap[pos]
    while pos > 0 and heap[parent(pos)].val > item.val:
        _place(heap, pos, heap[parent(pos)])
        pos = parent(pos)
    _place(heap, pos, item)


def _down(heap: List[HeapItem], pos: int) -> None:
    item = heap[pos]
    size = len(heap)
    while True:
        l, r = left(pos), right(pos)
        min_pos = None
        min_val = item.val
        if l < size and heap[l].val < min_val:
            min_pos = l
            min_val = heap[l].val
        if r < size and heap[r].val < min_val:
            min_pos = r
        if min_pos is None:
            break
        _place(heap, pos, heap[min_pos])
        pos = min_pos
    _place(heap, pos, item)


def update(heap: List[HeapItem], pos: int) -> None:
    """Restore heap order after the item at ``pos`` was added or changed."""
    if pos > 0 and heap[parent(pos)].val > heap[pos].val:
        _up(heap, pos)
    else:
        _down(heap, pos)