"""
Sorted container implementations for the store.
"""

from globaldb.models.sortedcontainers.red_black_tree import RedBlackTree

__all__ = ["RedBlackTree"]
