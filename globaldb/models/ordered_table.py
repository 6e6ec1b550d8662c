"""
OrderedTable - In-memory sorted map from encoded key to Value.
"""

from collections.abc import Iterator

from globaldb.interfaces.range_iterable import RangeIterable
from globaldb.interfaces.sorted_container import SortedContainer
from globaldb.models.key import PREFIX_END
from globaldb.models.value import Value


class OrderedTable(RangeIterable):
    """
    Sorted table backed by a SortedContainer.

    Supports:
    - O(log N) put, get, delete operations
    - Neighbor search that does not require the pivot to exist
    - Prefix (subtree) queries over encoded tuple keys
    """

    def __init__(self, sorted_container: SortedContainer) -> None:
        """
        Initialize OrderedTable.

        Args:
            sorted_container: The backing sorted data structure.
        """
        self._container = sorted_container

    def has(self, key: bytes) -> bool:
        return self._container.has(key)

    def put(self, key: bytes, value: Value) -> None:
        self._container.put(key, value)

    def get(self, key: bytes) -> Value | None:
        return self._container.get(key)

    def delete(self, key: bytes) -> bool:
        return self._container.delete(key)

    def apply(self, key: bytes, value: Value) -> None:
        """Apply a logged change: tombstones remove, regular values store."""
        if value.is_tombstone():
            self._container.delete(key)
        else:
            self._container.put(key, value)

    def successor(self, key: bytes | None) -> tuple[bytes, Value] | None:
        return self._container.successor(key)

    def predecessor(self, key: bytes | None) -> tuple[bytes, Value] | None:
        return self._container.predecessor(key)

    def has_descendants(self, prefix: bytes) -> bool:
        """
        Check whether any key extends `prefix`.

        Args:
            prefix: Encoded key of the parent node.

        Returns:
            True if at least one longer key starts with prefix.
        """
        entry = self._container.successor(prefix)
        return entry is not None and entry[0].startswith(prefix)

    def subtree(self, prefix: bytes) -> list[tuple[bytes, Value]]:
        """
        Get the node at `prefix` and all of its descendants.

        Args:
            prefix: Encoded key of the subtree root.

        Returns:
            List of (key, value) tuples in sorted order.
        """
        return list(self.iterator(prefix, prefix + PREFIX_END))

    def size(self) -> int:
        return self._container.size()

    def __iter__(self) -> Iterator[tuple[bytes, Value]]:
        return self._container.__iter__()

    def iterator(
        self, start: bytes | None = None, end: bytes | None = None
    ) -> Iterator[tuple[bytes, Value]]:
        return self._container.iterator(start, end)
