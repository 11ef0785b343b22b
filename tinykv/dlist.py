"""Intrusive circular doubly linked list.

A lone node is linked to itself, which makes it an empty list head.
"""

from __future__ import annotations


class DList:
    """A list node; also used as the sentinel head of a list."""

    def __init__(self) -> None:
        self.prev: DList = self
        self.next: DList = self

    def is_empty(self) -> bool:
        """True when this head has no other nodes linked to it."""
        return self.next is self

    def detach(self) -> None:
        """Unlink this node from its neighbours."""
        prev, nxt = self.prev, self.next
        prev.next = nxt
        nxt.prev = prev

    def insert_before(self, rookie: DList) -> None:
        """Link ``rookie`` just before this node (at the tail if this is the head)."""
        prev = self.prev
        prev.next = rookie
        rookie.prev = prev
        rookie.next = self
        self.prev = rookie