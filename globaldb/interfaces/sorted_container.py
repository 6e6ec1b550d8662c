"""
SortedContainer abstract base class for sorted key-value data structures.
"""

from abc import abstractmethod
from typing import Any

from globaldb.interfaces.range_iterable import RangeIterable


class SortedContainer(RangeIterable):
    """
    Abstract base class for sorted key-value containers keyed by bytes.

    Provides O(log N) operations for put, get, delete and neighbor search.
    Inherits range iteration capabilities from RangeIterable.

    Implementations:
    - RedBlackTree
    """

    @abstractmethod
    def put(self, key: bytes, value: Any) -> None:
        """
        Insert or update a key-value pair.

        Args:
            key: The key to insert/update.
            value: The value to associate with the key.

        Time complexity: O(log N)
        """
        pass

    @abstractmethod
    def get(self, key: bytes) -> Any | None:
        """
        Retrieve the value for a given key.

        Args:
            key: The key to look up.

        Returns:
            The value if found, None otherwise.

        Time complexity: O(log N)
        """
        pass

    @abstractmethod
    def delete(self, key: bytes) -> bool:
        """
        Remove a key-value pair.

        Args:
            key: The key to remove.

        Returns:
            True if the key was found and removed, False otherwise.

        Time complexity: O(log N)
        """
        pass

    @abstractmethod
    def has(self, key: bytes) -> bool:
        """
        Check if a key exists.

        Args:
            key: The key to check.

        Returns:
            True if the key exists, False otherwise.

        Time complexity: O(log N)
        """
        pass

    @abstractmethod
    def successor(self, key: bytes | None) -> tuple[bytes, Any] | None:
        """
        Find the entry with the smallest key strictly greater than `key`.

        The pivot does not have to be present in the container.

        Args:
            key: The pivot key. None selects the first entry.

        Returns:
            (key, value) of the neighbor, or None if there is none.

        Time complexity: O(log N)
        """
        pass

    @abstractmethod
    def predecessor(self, key: bytes | None) -> tuple[bytes, Any] | None:
        """
        Find the entry with the largest key strictly less than `key`.

        Args:
            key: The pivot key. None selects the last entry.

        Returns:
            (key, value) of the neighbor, or None if there is none.

        Time complexity: O(log N)
        """
        pass

    @abstractmethod
    def size(self) -> int:
        """
        Return the number of key-value pairs.

        Returns:
            The count of entries in the container.

        Time complexity: O(1)
        """
        pass
