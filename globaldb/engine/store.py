"""
Store - Main database API.
"""

import logging
import os
import threading
from collections.abc import Mapping
from enum import Enum
from typing import Any

from globaldb.engine.compactor import LogCompactor
from globaldb.engine.config import StorageType, StoreConfig
from globaldb.engine.cursor import Cursor
from globaldb.engine.namespace import Namespace
from globaldb.engine.recoverer import HEADER_KEY, TableRecoverer, header_value
from globaldb.models.exceptions import (
    ClosedError,
    CodecError,
    NotFoundError,
    NotOpenError,
    OpenError,
    WALCorruptionError,
)
from globaldb.models.key import (
    END,
    PREFIX_END,
    Key,
    KeyCodec,
    KeyType,
    Segment,
    decode_segment,
    encode_segment,
    is_start,
    pack,
)
from globaldb.models.ordered_table import OrderedTable
from globaldb.models.sortedcontainers import RedBlackTree
from globaldb.models.value import Value, format_number, parse_number, to_value
from globaldb.models.wal import WAL
from globaldb.models.wal_entry import WALEntry
from globaldb.version import __version__

logger = logging.getLogger(__name__)


class StoreState(Enum):
    NEW = "new"
    OPEN = "open"
    CLOSED = "closed"


class Store:
    """
    Ordered hierarchical key/value store.

    Provides:
    - set(key, value) / get(key) / defined(key) / delete(key)
    - next(key) / previous(key): ordered neighbor search
    - increment(key, by): atomic numeric update
    - namespace(name): hierarchical "global" handles (key_type "m")
    - open_cursor(...): stateful forward iteration

    Architecture:
    - Records live in an OrderedTable keyed by the codec's ordered bytes
    - With storage type "log", every change is appended to a record log
      before it is applied, and the log is replayed on open
    - One re-entrant lock serializes each call; calls are individually atomic
    """

    def __init__(self) -> None:
        self._state = StoreState.NEW
        self._lock = threading.RLock()
        self._config: StoreConfig | None = None
        self._codec: KeyCodec | None = None
        self._table: OrderedTable | None = None
        self._wal: WAL | None = None

    @staticmethod
    def version() -> str:
        return __version__

    @property
    def key_type(self) -> KeyType:
        with self._lock:
            self._check_open()
            return self._codec.key_type

    @property
    def config(self) -> StoreConfig | None:
        return self._config

    @property
    def is_open(self) -> bool:
        return self._state is StoreState.OPEN

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self, config: StoreConfig | Mapping[str, Any] | None = None, **options: Any) -> "Store":
        """
        Open the store.

        Args:
            config: A StoreConfig, or a mapping of open options.
            **options: Open options when no config object is given,
                       e.g. key_type="int", db_file="/tmp/records.db".

        Returns:
            self, so `with Store().open(key_type="str") as db:` works.

        Raises:
            OpenError: Invalid configuration, unusable location, key type
                       mismatch with existing data, or a corrupted log.
            ClosedError: The store was already closed.
        """
        if isinstance(config, StoreConfig):
            if options:
                raise OpenError("Pass either a StoreConfig or keyword options, not both")
        else:
            config = StoreConfig.from_mapping({**(config or {}), **options})

        with self._lock:
            if self._state is StoreState.OPEN:
                raise OpenError("Store is already open")
            if self._state is StoreState.CLOSED:
                raise ClosedError("Store has been closed; create a new Store to reopen")

            config.check_location()
            table = OrderedTable(RedBlackTree())
            wal = None
            if config.type is StorageType.LOG:
                wal = self._open_log(config, table)

            self._config = config
            self._codec = KeyCodec(config.key_type)
            self._table = table
            self._wal = wal
            self._state = StoreState.OPEN

        logger.info(
            "Opened %s store (key_type=%s, records=%d%s)",
            config.type.value,
            config.key_type.value,
            table.size(),
            f", log={config.log_path}" if wal else "",
        )
        return self

    def _open_log(self, config: StoreConfig, table: OrderedTable) -> WAL:
        """Replay the record log into `table` and open it for appends."""
        path = config.log_path
        wal = WAL(id=config.key_type.value, file_path=path)

        try:
            logged_key_type, replayed, valid_end = TableRecoverer().recover(wal, table)
        except WALCorruptionError as e:
            raise OpenError(f"Cannot open {path}: {e}") from e
        except (OSError, ValueError) as e:
            raise OpenError(f"Cannot read log {path}: {e}") from e

        if logged_key_type is None and replayed:
            raise OpenError(f"Log {path} has records but no header")
        if logged_key_type is not None and logged_key_type != config.key_type.value:
            raise OpenError(
                f"Log {path} holds key_type {logged_key_type!r}, "
                f"cannot open it as {config.key_type.value!r}"
            )

        try:
            # Appends must not land behind a partial entry from an interrupted write
            size = os.path.getsize(path) if os.path.exists(path) else 0
            if size > valid_end:
                logger.warning(
                    "Truncating torn tail of %s at offset %d (%d bytes dropped)",
                    path,
                    valid_end,
                    size - valid_end,
                )
                os.truncate(path, valid_end)
            wal.set_fsync_interval(config.fsync_interval_ms)
            wal.open()
            if logged_key_type is None:
                wal.append(
                    WALEntry(key=HEADER_KEY, value=header_value(config.key_type.value), seq=wal.seq)
                )
        except OSError as e:
            wal.close()
            raise OpenError(f"Cannot open log {path}: {e}") from e

        if replayed:
            logger.info("Recovered %d log entries from %s", replayed, path)
        return wal

    def close(self) -> None:
        """
        Close the store, flushing the record log.

        Calling close() on a closed store does nothing.

        Raises:
            NotOpenError: The store was never opened.
        """
        with self._lock:
            if self._state is StoreState.CLOSED:
                logger.debug("close() on a closed store ignored")
                return
            if self._state is StoreState.NEW:
                raise NotOpenError("Store is not open")

            try:
                if self._wal is not None:
                    if self._config.compact_on_close:
                        try:
                            self._compact_locked()
                        except OSError as e:
                            logger.warning("Compaction on close failed, keeping the full log: %s", e)
                    self._wal.close()
            finally:
                records = self._table.size()
                self._state = StoreState.CLOSED
                self._table = None
                self._wal = None

        logger.info("Closed store (%d records)", records)

    def __enter__(self) -> "Store":
        with self._lock:
            self._check_open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _check_open(self) -> None:
        if self._state is StoreState.OPEN:
            return
        if self._state is StoreState.CLOSED:
            raise ClosedError("Store is closed")
        raise NotOpenError("Store is not open")

    # ------------------------------------------------------------------
    # Point API
    # ------------------------------------------------------------------

    def set(self, key: Key, value: str | bytes | int | float) -> None:
        """
        Insert or overwrite a record.

        Args:
            key: int, str or tuple key matching the store's key type.
            value: str, bytes or number (numbers are stored as text).
        """
        val = to_value(value)
        with self._lock:
            self._check_open()
            raw = self._encode(key)
            self._write(raw, val)
        logger.debug("set %r", key)

    def get(self, key: Key) -> str:
        """
        Retrieve the value of a record as text.

        Raises:
            NotFoundError: If the key holds no value.
        """
        return self.get_bytes(key).decode("utf-8")

    def get_bytes(self, key: Key) -> bytes:
        """
        Retrieve the raw bytes of a record.

        Raises:
            NotFoundError: If the key holds no value.
        """
        with self._lock:
            self._check_open()
            value = self._table.get(self._encode(key))
        if value is None:
            raise NotFoundError(key)
        return value.data

    def defined(self, key: Key) -> bool:
        """Check whether a record exists for key."""
        with self._lock:
            self._check_open()
            return self._table.has(self._encode(key))

    def delete(self, key: Key) -> bool:
        """
        Delete a record.

        Returns:
            True if the record existed, False otherwise.
        """
        with self._lock:
            self._check_open()
            existed = self._erase(self._encode(key))
        logger.debug("delete %r -> %s", key, existed)
        return existed

    def increment(self, key: Key, by: int | float = 1) -> int | float:
        """
        Atomically add `by` to a numeric record (absent records count as 0).

        Returns:
            The new value.

        Raises:
            ValueError: If the stored value is not numeric.
        """
        with self._lock:
            self._check_open()
            return self._increment(self._encode(key), by)

    def __len__(self) -> int:
        with self._lock:
            self._check_open()
            return self._table.size()

    # ------------------------------------------------------------------
    # Ordered iteration
    # ------------------------------------------------------------------

    def next(self, key: Key | None = END) -> Segment:
        """
        Return the smallest key strictly greater than `key`.

        The pivot does not need to exist. "" (or None) starts from the
        first key. For key_type "m" the last element of a tuple key is the
        pivot and the leading elements are held fixed; a bare name walks
        namespace names.

        Returns:
            The next key (or subscript), or "" when there is none.
        """
        return self._order_key(key, forward=True)

    def previous(self, key: Key | None = END) -> Segment:
        """
        Return the largest key strictly less than `key`.

        "" (or None) starts from the last key.

        Returns:
            The previous key (or subscript), or "" when there is none.
        """
        return self._order_key(key, forward=False)

    def _order_key(self, key: Key | None, forward: bool) -> Segment:
        with self._lock:
            self._check_open()
            if self._codec.key_type is KeyType.M:
                segments = key if isinstance(key, tuple) else (key,)
                if not segments:
                    segments = (END,)
                head, pivot = segments[:-1], segments[-1]
                if head and not isinstance(head[0], str):
                    raise CodecError(f"Tuple keys must start with a namespace name, got {key!r}")
                if not head and not is_start(pivot) and not isinstance(pivot, str):
                    raise CodecError(f"Namespace names are strings, got {pivot!r}")
                return self._order(pack(head), pivot, forward)

            if not is_start(key):
                self._codec.encode(key)
            return self._order(b"", key, forward)

    def _order(self, prefix: bytes, pivot: Segment | None, forward: bool) -> Segment:
        """
        Neighbor search among the children of `prefix`.

        Moving forward from a pivot skips the pivot's own descendants.
        """
        with self._lock:
            self._check_open()
            if is_start(pivot):
                if forward:
                    entry = self._table.successor(prefix or None)
                else:
                    entry = self._table.predecessor(prefix + PREFIX_END)
            else:
                node = prefix + encode_segment(pivot)
                if forward:
                    entry = self._table.successor(node + PREFIX_END)
                else:
                    entry = self._table.predecessor(node)

        if entry is None:
            return END
        raw = entry[0]
        if len(raw) <= len(prefix) or not raw.startswith(prefix):
            return END
        segment, _ = decode_segment(raw, len(prefix))
        return segment

    # ------------------------------------------------------------------
    # Namespaces and cursors
    # ------------------------------------------------------------------

    def namespace(self, name: str, *prefix: Segment) -> Namespace:
        """
        Get a handle on a namespace ("global"), optionally bound to fixed
        leading subscripts.

        Raises:
            CodecError: If the store does not use key_type "m".
        """
        return Namespace(self, name, *prefix)

    def namespaces(self) -> list[str]:
        """Return the names of all namespaces holding records, in order."""
        self._require_m("namespaces()")
        names = []
        name = self._order(b"", END, forward=True)
        while name != END:
            names.append(name)
            name = self._order(b"", name, forward=True)
        return names

    def open_cursor(
        self,
        namespace: Namespace | str | None = None,
        key: Key | None = None,
        *,
        multilevel: bool = False,
        getdata: bool = False,
        globaldirectory: bool = False,
    ) -> Cursor:
        """
        Open a forward cursor.

        Args:
            namespace: Namespace handle or name to scan (key_type "m").
                       None scans the whole store.
            key: Start position; the scan begins strictly after it.
                 None or "" scans from the first key.
            multilevel: Emit a GroupHeader before each new key prefix.
            getdata: Include record values in results.
            globaldirectory: Scan namespace names instead of records.
        """
        return Cursor(
            self,
            namespace,
            key,
            multilevel=multilevel,
            getdata=getdata,
            globaldirectory=globaldirectory,
        )

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def compact(self) -> int:
        """
        Rewrite the record log with live records only.

        Returns:
            Number of records written (0 for memory stores).
        """
        with self._lock:
            self._check_open()
            if self._wal is None:
                return 0
            return self._compact_locked()

    def _compact_locked(self) -> int:
        path = self._config.log_path
        self._wal.close()
        try:
            written = LogCompactor(self._table, path, self._codec.key_type.value).compact()
        finally:
            wal = WAL(id=self._codec.key_type.value, file_path=path)
            wal.set_fsync_interval(self._config.fsync_interval_ms)
            wal.open()
            self._wal = wal
        logger.info("Compacted %s to %d records", path, written)
        return written

    # ------------------------------------------------------------------
    # Encoded-key operations shared with Namespace and Cursor
    # ------------------------------------------------------------------

    def _require_m(self, operation: str) -> None:
        with self._lock:
            self._check_open()
            if self._codec.key_type is not KeyType.M:
                raise CodecError(f"{operation} requires key_type 'm'")

    def _encode(self, key: Key) -> bytes:
        if self._codec.key_type is KeyType.M and isinstance(key, str):
            key = (key,)
        return self._codec.encode(key)

    def _decode(self, raw: bytes) -> Key:
        return self._codec.decode(raw)

    def _write(self, raw: bytes, value: Value) -> None:
        """Log then apply a record (caller holds the lock)."""
        if self._wal is not None:
            self._wal.append(WALEntry(key=raw, value=value, seq=self._wal.seq))
        self._table.put(raw, value)

    def _write_many(self, records: list[tuple[bytes, Value]]) -> None:
        """Log a batch with a single fsync, then apply it (caller holds the lock)."""
        if self._wal is not None:
            seq = self._wal.seq
            self._wal.batch_append(
                [WALEntry(key=raw, value=value, seq=seq + i) for i, (raw, value) in enumerate(records)]
            )
        for raw, value in records:
            self._table.put(raw, value)

    def _erase(self, raw: bytes) -> bool:
        """Log a tombstone then remove the record (caller holds the lock)."""
        if not self._table.has(raw):
            return False
        if self._wal is not None:
            self._wal.append(WALEntry(key=raw, value=Value.tombstone(), seq=self._wal.seq))
        return self._table.delete(raw)

    def _erase_tree(self, prefix: bytes) -> int:
        """Remove the node at `prefix` and all descendants."""
        with self._lock:
            self._check_open()
            keys = [raw for raw, _ in self._table.subtree(prefix)]
            if not keys:
                return 0
            if self._wal is not None:
                seq = self._wal.seq
                self._wal.batch_append(
                    [WALEntry(key=raw, value=Value.tombstone(), seq=seq + i) for i, raw in enumerate(keys)]
                )
            for raw in keys:
                self._table.delete(raw)
            return len(keys)

    def _increment(self, raw: bytes, by: int | float) -> int | float:
        if isinstance(by, bool) or not isinstance(by, (int, float)):
            raise TypeError(f"Increment must be a number, got {by!r}")
        with self._lock:
            self._check_open()
            current = self._table.get(raw)
            number = parse_number(current.text()) if current is not None else 0
            result = number + by
            if isinstance(result, float) and result.is_integer():
                result = int(result)
            self._write(raw, Value.regular(format_number(result)))
            return result

    def _read(self, raw: bytes) -> Value | None:
        with self._lock:
            self._check_open()
            return self._table.get(raw)

    def _node_state(self, raw: bytes) -> tuple[bool, bool]:
        """(has value, has descendants) for a node."""
        with self._lock:
            self._check_open()
            return self._table.has(raw), self._table.has_descendants(raw)

    def _subtree(self, prefix: bytes) -> list[tuple[bytes, Value]]:
        with self._lock:
            self._check_open()
            return self._table.subtree(prefix)

    def _seek(self, raw: bytes, inclusive: bool = False) -> tuple[bytes, Value] | None:
        """First entry after `raw` (or at it, when inclusive)."""
        with self._lock:
            self._check_open()
            if inclusive:
                value = self._table.get(raw)
                if value is not None:
                    return raw, value
            return self._table.successor(raw)
