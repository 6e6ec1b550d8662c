"""
StoreConfig - validated options for opening a store.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any

from globaldb.models.exceptions import CodecError, OpenError
from globaldb.models.key import KeyType

DEFAULT_LOG_NAME = "globaldb.wal"

# Maximum fsync interval accepted by the record log
MAX_FSYNC_INTERVAL_MS = 10000


class StorageType(str, Enum):
    """Where records live."""

    MEMORY = "memory"  # in-process only, lost on close
    LOG = "log"  # in-process table backed by an append-only record log


@dataclass(frozen=True)
class StoreConfig:
    """
    Options for Store.open().

    Attributes:
        key_type: Shape of the keys: "int", "str" or "m" (alias "tuple").
        type: "memory" or "log". Inferred from db_file/env_dir when omitted.
        db_file: Path of the record log file.
        env_dir: Directory holding the record log (as globaldb.wal).
        fsync_interval_ms: Milliseconds between log fsyncs (0 = every write).
        compact_on_close: Rewrite the log with live records only on close.
    """

    key_type: KeyType | str
    type: StorageType | str | None = None
    db_file: str | None = None
    env_dir: str | None = None
    fsync_interval_ms: int = 0
    compact_on_close: bool = False

    def __post_init__(self) -> None:
        try:
            key_type = KeyType.parse(self.key_type)
        except CodecError as e:
            raise OpenError(str(e)) from e
        object.__setattr__(self, "key_type", key_type)

        if self.db_file and self.env_dir:
            raise OpenError("Specify either db_file or env_dir, not both")

        storage_type = self.type
        if storage_type is None:
            storage_type = StorageType.LOG if (self.db_file or self.env_dir) else StorageType.MEMORY
        if not isinstance(storage_type, StorageType):
            try:
                storage_type = StorageType(str(storage_type).strip().lower())
            except ValueError:
                raise OpenError(
                    f"Unsupported storage type {self.type!r}; expected 'memory' or 'log'"
                ) from None
        object.__setattr__(self, "type", storage_type)

        if storage_type is StorageType.LOG and not (self.db_file or self.env_dir):
            raise OpenError("Storage type 'log' requires db_file or env_dir")
        if storage_type is StorageType.MEMORY and (self.db_file or self.env_dir):
            raise OpenError("Storage type 'memory' does not take db_file or env_dir")

        # Validate fsync_interval_ms
        if self.fsync_interval_ms < 0:
            raise OpenError(f"fsync_interval_ms must be >= 0, got {self.fsync_interval_ms}")
        if self.fsync_interval_ms > MAX_FSYNC_INTERVAL_MS:
            raise OpenError(
                f"fsync_interval_ms cannot exceed {MAX_FSYNC_INTERVAL_MS}ms, "
                f"got {self.fsync_interval_ms}"
            )

    @property
    def log_path(self) -> str | None:
        """Absolute path of the record log, or None for memory stores."""
        if self.db_file:
            return os.path.abspath(self.db_file)
        if self.env_dir:
            return os.path.join(os.path.abspath(self.env_dir), DEFAULT_LOG_NAME)
        return None

    def check_location(self) -> None:
        """
        Verify the log location is usable.

        Raises:
            OpenError: If the log or its directory cannot be written.
        """
        path = self.log_path
        if path is None:
            return

        if os.path.isdir(path):
            raise OpenError(f"Log path is a directory: {path}")

        directory = os.path.dirname(path)
        if os.path.exists(path):
            if not os.access(path, os.W_OK):
                raise OpenError(f"Log file not writable: {path}")
            return

        # Walk up to the first existing ancestor; it must allow creating the rest
        ancestor = directory
        while ancestor and not os.path.exists(ancestor):
            parent = os.path.dirname(ancestor)
            if parent == ancestor:
                break
            ancestor = parent
        if not os.path.isdir(ancestor) or not os.access(ancestor, os.W_OK):
            raise OpenError(
                f"Cannot create log at {path}: directory not writable: {ancestor}"
            )

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "StoreConfig":
        """
        Build a config from a string-keyed option mapping.

        Args:
            options: e.g. {"type": "log", "db_file": "/tmp/x.db", "key_type": "int"}

        Raises:
            OpenError: On unknown or unsupported options.
        """
        if "db_library" in options:
            raise OpenError("db_library is not supported: native storage engines are not loaded")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise OpenError(f"Unknown open options: {', '.join(unknown)}")
        if "key_type" not in options:
            raise OpenError("Missing required open option: key_type")

        return cls(**dict(options))
