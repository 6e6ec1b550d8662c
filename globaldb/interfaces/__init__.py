"""
Abstract base classes for the store's containers.
"""

from globaldb.interfaces.range_iterable import RangeIterable
from globaldb.interfaces.sorted_container import SortedContainer

__all__ = ["RangeIterable", "SortedContainer"]
