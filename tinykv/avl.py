"""Self-balancing AVL tree nodes that keep subtree sizes for rank queries.

Nodes are meant to be subclassed by the objects stored in the tree; the
functions here only touch the structural fields.
"""

from __future__ import annotations

from typing import Optional


class AVLNode:
    """A tree node tracking its subtree depth and node count."""

    __slots__ = ("depth", "cnt", "left", "right", "parent")

    def __init__(self) -> None:
        self.depth = 1
        self.cnt = 1
        self.left: Optional[AVLNode] = None
        self.right: Optional[AVLNode] = None
        self.parent: Optional[AVLNode] = None


def _depth(node: Optional[AVLNode]) -> int:
    return node.depth if node is not None else 0


def _cnt(node: Optional[AVLNode]) -> int:
    return node.cnt if node is not None else 0


def _update(node: AVLNode) -> None:
    node.depth = 1 + max(_depth(node.left), _depth(node.right))
    node.cnt = 1 + _cnt(node.left) + _cnt(node.right)


def _rot_left(node: AVLNode) -> AVLNode:
    new_node = node.right
    if new_node.left is not None:
        new_node.left.parent = node
    node.right = new_node.left
    new_node.left = node
    new_node.parent = node.parent
    node.parent = new_node
    _update(node)
    _update(new_node)
    return new_node


def _rot_right(node: AVLNode) -> AVLNode:
    new_node = node.left
    if new_node.right is not None:
        new_node.right.parent = node
    node.left = new_node.right
    new_node.right = node
    new_node.parent = node.parent
    node.parent = new_node
    _update(node)
    _update(new_node)
    return new_node


def _fix_left(root: AVLNode) -> AVLNode:
    if _depth(root.left.left) < _depth(root.left.right):
        root.left = _rot_left(root.left)
    return _rot_right(root)


def _fix_right(root: AVLNode) -> AVLNode:
    if _depth(root.right.right) < _depth(root.right.left):
        root.right = _rot_right(root.right)
    return _rot_left(root)


def rebalance(node: AVLNode) -> AVLNode:
    """Restore the AVL invariants from ``node`` up to the root; return the root."""
    while True:
        _update(node)
        left_depth = _depth(node.left)
        right_depth = _depth(node.right)
        parent = node.parent
        is_left_child = parent is not None and parent.left is node
        if left_depth == right_depth + 2:
            node = _fix_left(node)
        elif left_depth + 2 == right_depth:
            node = _fix_right(node)
        if parent is None:
            return node
        if is_left_child:
            parent.left = node
        else:
            parent.right = node
        node = parent


def _replace_child(parent: AVLNode, old: AVLNode, new: Optional[AVLNode]) -> None:
    if parent.left is old:
        parent.left = new
    else:
        parent.right = new


def remove(node: AVLNode) -> Optional[AVLNode]:
    """Detach ``node`` from its tree and return the new root (``None`` if empty)."""
    if node.right is None:
        parent = node.parent
        if node.left is not None:
            node.left.parent = parent
        if parent is not None:
            _replace_child(parent, node, node.left)
            return rebalance(parent)
        return node.left

    # Put the in-order successor in the place of the removed node.
    victim = node.right
    while victim.left is not None:
        victim = victim.left
    root = remove(victim)

    victim.depth = node.depth
    victim.cnt = node.cnt
    victim.left = node.left
    victim.right = node.right
    victim.parent = node.parent
    if victim.left is not None:
        victim.left.parent = victim
    if victim.right is not None:
        victim.right.parent = victim
    parent = node.parent
    if parent is not None:
        _replace_child(parent, node, victim)
        return root
    return victim


def offset(node: AVLNode, offset: int) -> Optional[AVLNode]:
    """Return the node ``offset`` places away in sorted order, or ``None``.

    Runs in O(log n) regardless of the size of the offset.
    """
    target = offset
    pos = 0
    while pos != target:
        if pos < target and pos + _cnt(node.right) >= target:
            node = node.right
            pos += _cnt(node.left) + 1
        elif pos > target and pos - _cnt(node.left) <= target:
            node = node.left
            pos -= _cnt(node.right) + 1
        else:
            parent = node.parent
            if parent is None:
                return None
            if parent.right is node:
                pos -= _cnt(node.left) + 1
            else:
                pos += _cnt(node.right) + 1
            node = parent
    return node