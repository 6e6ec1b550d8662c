"""
Ordered hierarchical key/value store.

This package provides an embedded store with:
- set/get/defined/delete over int, str or tuple ("m") keys
- next/previous - ordered neighbor search that needs no existing pivot
- namespace(name) - M-style "globals" addressed by subscripts
- open_cursor() - forward cursors, optionally grouped by key level
- Optional durability through an append-only record log
"""

from globaldb.engine.aio import AsyncNamespace, AsyncStore
from globaldb.engine.config import StorageType, StoreConfig
from globaldb.engine.cursor import Cursor, CursorKey, CursorRecord, GroupHeader
from globaldb.engine.namespace import Namespace
from globaldb.engine.store import Store
from globaldb.models.exceptions import (
    ClosedError,
    CodecError,
    NotFoundError,
    NotOpenError,
    OpenError,
    StoreError,
    WALCorruptionError,
)
from globaldb.models.key import END, KeyType
from globaldb.version import __version__

__all__ = [
    "END",
    "AsyncNamespace",
    "AsyncStore",
    "ClosedError",
    "CodecError",
    "Cursor",
    "CursorKey",
    "CursorRecord",
    "GroupHeader",
    "KeyType",
    "Namespace",
    "NotFoundError",
    "NotOpenError",
    "OpenError",
    "StorageType",
    "Store",
    "StoreConfig",
    "StoreError",
    "WALCorruptionError",
    "__version__",
]
