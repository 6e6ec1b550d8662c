"""
LogCompactor - Rewrite the record log with live records only.

Every overwrite and delete leaves superseded entries behind in the log.
Compaction writes the header plus one entry per live record to a
temporary file and atomically swaps it in.
"""

import os
from collections.abc import Iterator

from globaldb.engine.recoverer import HEADER_KEY, header_value
from globaldb.models.ordered_table import OrderedTable
from globaldb.models.wal import WAL
from globaldb.models.wal_entry import WALEntry


class LogCompactor:
    """
    Compacts a record log against the current table contents.

    Thread Safety:
    - The caller must hold the store lock and close the live log first
    - Does not modify the table
    """

    def __init__(self, table: OrderedTable, log_path: str, key_type: str) -> None:
        """
        Initialize compactor.

        Args:
            table: Table whose live records are written out.
            log_path: Path of the log to replace.
            key_type: Key type recorded in the new log header.
        """
        self._table = table
        self._log_path = log_path
        self._key_type = key_type

    def compact(self) -> int:
        """
        Perform compaction synchronously.

        Algorithm:
        1. Write header and live records to <log>.tmp (one fsync)
        2. Atomic rename over the original log

        Returns:
            Number of records written.
        """
        temp_path = f"{self._log_path}.tmp"
        if os.path.exists(temp_path):
            os.remove(temp_path)

        entries = list(self._entries())

        wal = WAL(id="compact", file_path=temp_path)
        wal.open()
        try:
            wal.batch_append(entries)
        finally:
            wal.close()

        # Atomic rename - the old log stays intact until this point
        os.replace(temp_path, self._log_path)

        return len(entries) - 1

    def _entries(self) -> Iterator[WALEntry]:
        yield WALEntry(key=HEADER_KEY, value=header_value(self._key_type), seq=0)
        for seq, (key, value) in enumerate(self._table, start=1):
            yield WALEntry(key=key, value=value, seq=seq)
