"""Sorted set: members indexed by name in a hash map and by (score, name) in an AVL tree."""

from __future__ import annotations

from typing import Optional, Union

from . import avl
from .avl import AVLNode, rebalance, remove
from .hashtable import HMap, HNode, str_hash

Name = Union[bytes, bytearray, str]


def _as_bytes(name: Name) -> bytes:
    if isinstance(name, str):
        return name.encode("utf-8")
    return bytes(name)


class ZNode(AVLNode, HNode):
    """A sorted-set member: linked into both the tree and the hash map."""

    def __init__(self, name: bytes, score: float) -> None:
        AVLNode.__init__(self)
        HNode.__init__(self, str_hash(name))
        self.name = name
        self.score = score


class _HKey(HNode):
    """Probe node used for hash lookups by name."""

    def __init__(self, name: bytes) -> None:
        super().__init__(str_hash(name))
        self.name = name


def _name_eq(node: HNode, key: HNode) -> bool:
    return node.hcode == key.hcode and node.name == key.name  # type: ignore[attr-defined]


def _less(node: ZNode, score: float, name: bytes) -> bool:
    """True when ``node`` orders strictly before the (score, name) tuple."""
    if node.score != score:
        return node.score < score
    return node.name < name


class ZSet:
    """A set of named members ordered by score, then by name."""

    def __init__(self) -> None:
        self._tree: Optional[ZNode] = None
        self._hmap = HMap()

    def _tree_add(self, node: ZNode) -> None:
        if self._tree is None:
            self._tree = node
            return
        cur = self._tree
        while True:
            if _less(node, cur.score, cur.name):
                if cur.left is None:
                    cur.left = node
                    break
                cur = cur.left
            else:
                if cur.right is None:
                    cur.right = node
                    break
                cur = cur.right
        node.parent = cur
        self._tree = rebalance(node)

    def _update(self, node: ZNode, score: float) -> None:
        if node.score == score:
            return
        self._tree = remove(node)
        node.score = score
        AVLNode.__init__(node)
        self._tree_add(node)

    def add(self, name: Name, score: float) -> bool:
        """Add a member or update its score; return True if it is new."""
        key = _as_bytes(name)
        node = self.lookup(key)
        if node is not None:
            self._update(node, score)
            return False
        node = ZNode(key, score)
        self._hmap.insert(node)
        self._tree_add(node)
        return True

    def lookup(self, name: Name) -> Optional[ZNode]:
        """Return the member called ``name``, or ``None``."""
        if self._tree is None:
            return None
        found = self._hmap.lookup(_HKey(_as_bytes(name)), _name_eq)
        return found  # type: ignore[return-value]

    def pop(self, name: Name) -> Optional[ZNode]:
        """Remove and return the member called ``name``, or ``None``."""
        if self._tree is None:
            return None
        found = self._hmap.pop(_HKey(_as_bytes(name)), _name_eq)
        if found is None:
            return None
        self._tree = remove(found)  # type: ignore[arg-type]
        return found  # type: ignore[return-value]

    def query(self, score: float, name: Name, offset: int = 0) -> Optional[ZNode]:
        """Find the first member >= (score, name), then move ``offset`` places."""
        key = _as_bytes(name)
        found: Optional[ZNode] = None
        cur = self._tree
        while cur is not None:
            if _less(cur, score, key):
                cur = cur.right
            else:
                found = cur
                cur = cur.left
        if found is None:
            return None
        return avl.offset(found, offset)  # type: ignore[return-value]

    def dispose(self) -> None:
        """Drop every member."""
        self._tree = None
        self._hmap.clear()

    def __len__(self) -> int:
        return len(self._hmap)