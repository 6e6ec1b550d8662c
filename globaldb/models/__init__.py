"""
Data models for the store.
"""

from globaldb.models.key import KeyCodec, KeyType
from globaldb.models.ordered_table import OrderedTable
from globaldb.models.value import Value, ValueType
from globaldb.models.wal import WAL
from globaldb.models.wal_entry import WALEntry

__all__ = [
    "KeyCodec",
    "KeyType",
    "OrderedTable",
    "Value",
    "ValueType",
    "WALEntry",
    "WAL",
]
