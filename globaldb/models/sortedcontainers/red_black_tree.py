"""
Red-Black Tree implementation for sorted key-value storage.

Keys are encoded byte strings; neighbor search (successor/predecessor)
runs in O(log N) without requiring the pivot key to be present.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from globaldb.interfaces.sorted_container import SortedContainer


class Color(IntEnum):
    """Node color for Red-Black Tree."""

    RED = 0
    BLACK = 1


@dataclass(eq=False)
class Node:
    """Node in the Red-Black Tree."""

    key: bytes
    value: Any
    color: Color = Color.RED
    left: "Node | None" = None
    right: "Node | None" = None
    parent: "Node | None" = None


class RedBlackTree(SortedContainer):
    """
    Red-Black Tree implementation of SortedContainer.

    Properties maintained:
    1. Every node is either red or black
    2. Root is always black
    3. Red nodes cannot have red children
    4. Every path from root to leaf has same number of black nodes
    """

    def __init__(self) -> None:
        self._root: Node | None = None
        self._size: int = 0

    def put(self, key: bytes, value: Any) -> None:
        """Insert or update a key-value pair. O(log N)"""
        if self._root is None:
            self._root = Node(key=key, value=value, color=Color.BLACK)
            self._size = 1
            return

        # Find insertion point
        parent = None
        current = self._root

        while current is not None:
            parent = current
            if key < current.key:
                current = current.left
            elif key > current.key:
                current = current.right
            else:
                # Key exists, update value
                current.value = value
                return

        # Insert new node
        new_node = Node(key=key, value=value, parent=parent)
        if key < parent.key:
            parent.left = new_node
        else:
            parent.right = new_node

        self._size += 1
        self._fix_insert(new_node)

    def get(self, key: bytes) -> Any | None:
        """Retrieve value by key. O(log N)"""
        node = self._find_node(key)
        return node.value if node else None

    def delete(self, key: bytes) -> bool:
        """Remove a key-value pair. O(log N)"""
        node = self._find_node(key)
        if node is None:
            return False

        self._delete_node(node)
        self._size -= 1
        return True

    def has(self, key: bytes) -> bool:
        return self._find_node(key) is not None

    def successor(self, key: bytes | None) -> tuple[bytes, Any] | None:
        """Smallest entry with key > `key` (first entry when key is None). O(log N)"""
        best = None
        current = self._root
        while current is not None:
            if key is None or current.key > key:
                best = current
                current = current.left
            else:
                current = current.right
        return (best.key, best.value) if best else None

    def predecessor(self, key: bytes | None) -> tuple[bytes, Any] | None:
        """Largest entry with key < `key` (last entry when key is None). O(log N)"""
        best = None
        current = self._root
        while current is not None:
            if key is None or current.key < key:
                best = current
                current = current.right
            else:
                current = current.left
        return (best.key, best.value) if best else None

    def size(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[tuple[bytes, Any]]:
        return self.iterator()

    def iterator(
        self, start: bytes | None = None, end: bytes | None = None
    ) -> Iterator[tuple[bytes, Any]]:
        return _RangeIterator(self._root, start, end)

    def _find_node(self, key: bytes) -> Node | None:
        """Find node by key."""
        current = self._root
        while current is not None:
            if key < current.key:
                current = current.left
            elif key > current.key:
                current = current.right
            else:
                return current
        return None

    def _fix_insert(self, node: Node) -> None:
        """Fix Red-Black Tree properties after insert."""
        while node != self._root and node.parent and node.parent.color == Color.RED:
            grandparent = self._grandparent(node)
            if grandparent is None:
                break

            if node.parent == grandparent.left:
                uncle = grandparent.right

                if uncle and uncle.color == Color.RED:
                    # Case 1: Uncle is red
                    node.parent.color = Color.BLACK
                    uncle.color = Color.BLACK
                    grandparent.color = Color.RED
                    node = grandparent
                else:
                    if node == node.parent.right:
                        # Case 2: Node is right child
                        node = node.parent
                        self._rotate_left(node)

                    # Case 3: Node is left child
                    node.parent.color = Color.BLACK
                    if self._grandparent(node):
                        self._grandparent(node).color = Color.RED
                        self._rotate_right(self._grandparent(node))
            else:
                uncle = grandparent.left

                if uncle and uncle.color == Color.RED:
                    node.parent.color = Color.BLACK
                    uncle.color = Color.BLACK
                    grandparent.color = Color.RED
                    node = grandparent
                else:
                    if node == node.parent.left:
                        node = node.parent
                        self._rotate_right(node)

                    node.parent.color = Color.BLACK
                    if self._grandparent(node):
                        self._grandparent(node).color = Color.RED
                        self._rotate_left(self._grandparent(node))

        self._root.color = Color.BLACK

    def _grandparent(self, node: Node) -> Node | None:
        """Get grandparent of node."""
        if node.parent:
            return node.parent.parent
        return None

    def _rotate_left(self, node: Node) -> None:
        """Left rotation."""
        right_child = node.right
        if right_child is None:
            return

        node.right = right_child.left
        if right_child.left:
            right_child.left.parent = node

        right_child.parent = node.parent

        if node.parent is None:
            self._root = right_child
        elif node == node.parent.left:
            node.parent.left = right_child
        else:
            node.parent.right = right_child

        right_child.left = node
        node.parent = right_child

    def _rotate_right(self, node: Node) -> None:
        """Right rotation."""
        left_child = node.left
        if left_child is None:
            return

        node.left = left_child.right
        if left_child.right:
            left_child.right.parent = node

        left_child.parent = node.parent

        if node.parent is None:
            self._root = left_child
        elif node == node.parent.right:
            node.parent.right = left_child
        else:
            node.parent.left = left_child

        left_child.right = node
        node.parent = left_child

    def _delete_node(self, node: Node) -> None:
        """Delete a node from the tree."""
        # Find replacement node
        if node.left and node.right:
            # Node has two children - find successor
            successor = node.right
            while successor.left:
                successor = successor.left

            # Copy successor's data to node
            node.key = successor.key
            node.value = successor.value
            node = successor

        # Node has at most one child
        child = node.left if node.left else node.right

        if node.color == Color.BLACK:
            if child and child.color == Color.RED:
                child.color = Color.BLACK
            else:
                self._fix_delete(node)

        self._replace_node(node, child)

    def _replace_node(self, node: Node, child: Node | None) -> None:
        """Replace node with child in tree."""
        if node.parent is None:
            self._root = child
        elif node == node.parent.left:
            node.parent.left = child
        else:
            node.parent.right = child

        if child:
            child.parent = node.parent

    def _fix_delete(self, node: Node) -> None:
        """Fix Red-Black Tree properties before a black leaf is unlinked."""
        while node != self._root and node.color == Color.BLACK:
            if node.parent is None:
                break

            if node == node.parent.left:
                sibling = node.parent.right

                if sibling and sibling.color == Color.RED:
                    sibling.color = Color.BLACK
                    node.parent.color = Color.RED
                    self._rotate_left(node.parent)
                    sibling = node.parent.right

                if sibling is None:
                    node = node.parent
                    continue

                left_black = sibling.left is None or sibling.left.color == Color.BLACK
                right_black = sibling.right is None or sibling.right.color == Color.BLACK

                if left_black and right_black:
                    sibling.color = Color.RED
                    node = node.parent
                else:
                    if right_black:
                        if sibling.left:
                            sibling.left.color = Color.BLACK
                        sibling.color = Color.RED
                        self._rotate_right(sibling)
                        sibling = node.parent.right

                    sibling.color = node.parent.color
                    node.parent.color = Color.BLACK
                    if sibling.right:
                        sibling.right.color = Color.BLACK
                    self._rotate_left(node.parent)
                    node = self._root
            else:
                sibling = node.parent.left

                if sibling and sibling.color == Color.RED:
                    sibling.color = Color.BLACK
                    node.parent.color = Color.RED
                    self._rotate_right(node.parent)
                    sibling = node.parent.left

                if sibling is None:
                    node = node.parent
                    continue

                left_black = sibling.left is None or sibling.left.color == Color.BLACK
                right_black = sibling.right is None or sibling.right.color == Color.BLACK

                if left_black and right_black:
                    sibling.color = Color.RED
                    node = node.parent
                else:
                    if left_black:
                        if sibling.right:
                            sibling.right.color = Color.BLACK
                        sibling.color = Color.RED
                        self._rotate_left(sibling)
                        sibling = node.parent.left

                    sibling.color = node.parent.color
                    node.parent.color = Color.BLACK
                    if sibling.left:
                        sibling.left.color = Color.BLACK
                    self._rotate_right(node.parent)
                    node = self._root

        node.color = Color.BLACK


class _RangeIterator(Iterator[tuple[bytes, Any]]):
    """Iterator for range queries on Red-Black Tree."""

    def __init__(self, root: Node | None, start: bytes | None, end: bytes | None) -> None:
        self._stack: list[Node] = []
        self._end = end

        # Initialize stack with nodes >= start
        self._push_left_path(root, start)

    def __iter__(self) -> Iterator[tuple[bytes, Any]]:
        return self

    def __next__(self) -> tuple[bytes, Any]:
        if not self._stack:
            raise StopIteration

        node = self._stack.pop()

        # Check end bound
        if self._end is not None and node.key >= self._end:
            self._stack.clear()
            raise StopIteration

        result = (node.key, node.value)

        # Push right subtree's left path
        self._push_left_path(node.right, None)

        return result

    def _push_left_path(self, node: Node | None, start: bytes | None) -> None:
        """Push leftmost path to stack, respecting start bound."""
        while node:
            if start is not None and node.key < start:
                # Skip nodes less than start
                node = node.right
            else:
                self._stack.append(node)
                node = node.left
