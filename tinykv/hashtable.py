"""Chained hash map with progressive resizing.

Stored objects subclass :class:`HNode`; lookups take a probe node carrying
the hash code and an equality callback ``eq(candidate, key)``.
"""

from __future__ import annotations

from typing import Callable, Iterator, Optional, Tuple

RESIZING_WORK = 128
MAX_LOAD_FACTOR = 8
INITIAL_SLOTS = 4


def str_hash(data: bytes) -> int:
    """Return the 32-bit FNV-style hash of ``data``."""
    h = 0x811C9DC5
    for byte in data:
        h = ((h + byte) * 0x01000193) & 0xFFFFFFFF
    return h


class HNode:
    """A hash map entry: a hash code and the link to the next node in a chain."""

    def __init__(self, hcode: int = 0) -> None:
        self.hcode = hcode
        self.next: Optional[HNode] = None


Eq = Callable[[HNode, HNode], bool]


class _HTab:
    """A fixed-size table of chains; an empty slot list means unallocated."""

    def __init__(self, n: int = 0) -> None:
        if n and (n & (n - 1)):
            raise ValueError("table size must be a power of two")
        self.slots: list[Optional[HNode]] = [None] * n
        self.mask = n - 1 if n else 0
        self.size = 0

    def insert(self, node: HNode) -> None:
        pos = node.hcode & self.mask
        node.next = self.slots[pos]
        self.slots[pos] = node
        self.size += 1

    def find(self, key: HNode, eq: Eq) -> Optional[Tuple[int, Optional[HNode], HNode]]:
        if not self.slots:
            return None
        pos = key.hcode & self.mask
        prev = None
        node = self.slots[pos]
        while node is not None:
            if eq(node, key):
                return pos, prev, node
            prev, node = node, node.next
        return None

    def detach(self, pos: int, prev: Optional[HNode], node: HNode) -> HNode:
        if prev is None:
            self.slots[pos] = node.next
        else:
            prev.next = node.next
        node.next = None
        self.size -= 1
        return node

    def __iter__(self) -> Iterator[HNode]:
        if self.size == 0:
            return
        for head in self.slots:
            node = head
            while node is not None:
                yield node
                node = node.next


class HMap:
    """Hash map made of two tables so that growing is spread over many calls."""

    def __init__(self) -> None:
        self._ht1 = _HTab()
        self._ht2 = _HTab()
        self._resizing_pos = 0

    def _help_resizing(self) -> None:
        ht2 = self._ht2
        if not ht2.slots:
            return
        moved = 0
        while moved < RESIZING_WORK and ht2.size > 0:
            node = ht2.slots[self._resizing_pos]
            if node is None:
                self._resizing_pos += 1
                continue
            self._ht1.insert(ht2.detach(self._resizing_pos, None, node))
            moved += 1
        if ht2.size == 0:
            self._ht2 = _HTab()

    def _start_resizing(self) -> None:
        self._ht2 = self._ht1
        self._ht1 = _HTab((self._ht2.mask + 1) * 2)
        self._resizing_pos = 0

    def lookup(self, key: HNode, eq: Eq) -> Optional[HNode]:
        """Return the node equal to ``key``, or ``None``."""
        self._help_resizing()
        found = self._ht1.find(key, eq) or self._ht2.find(key, eq)
        return found[2] if found else None

    def insert(self, node: HNode) -> None:
        """Add ``node``; duplicates are not checked."""
        if not self._ht1.slots:
            self._ht1 = _HTab(INITIAL_SLOTS)
        self._ht1.insert(node)
        if not self._ht2.slots:
            load_factor = self._ht1.size // (self._ht1.mask + 1)
            if load_factor >= MAX_LOAD_FACTOR:
                self._start_resizing()
        self._help_resizing()

    def pop(self, key: HNode, eq: Eq) -> Optional[HNode]:
        """Remove and return the node equal to ``key``, or ``None``."""
        self._help_resizing()
        for table in (self._ht1, self._ht2):
            found = table.find(key, eq)
            if found:
                return table.detach(*found)
        return None

    def nodes(self) -> Iterator[HNode]:
        """Yield every stored node."""
        yield from self._ht1
        yield from self._ht2

    def clear(self) -> None:
        """Drop every node."""
        self._ht1 = _HTab()
        self._ht2 = _HTab()
        self._resizing_pos = 0

    def __len__(self) -> int:
        return self._ht1.size + self._ht2.size