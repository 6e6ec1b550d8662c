"""
TableRecoverer - Rebuild the ordered table from the record log on open.
"""

from globaldb.models.ordered_table import OrderedTable
from globaldb.models.value import Value
from globaldb.models.wal import WAL

# Log header payload: "key_type=<int|str|m>"
HEADER_KEY = b""
HEADER_FIELD = "key_type"


def header_value(key_type: str) -> Value:
    """Build the metadata value written as the first log entry."""
    return Value.meta(f"{HEADER_FIELD}={key_type}")


def parse_header(value: Value) -> str | None:
    name, _, key_type = value.text().partition("=")
    return key_type if name == HEADER_FIELD and key_type else None


class TableRecoverer:
    """
    Recovers an OrderedTable from a record log.

    Used during open to rebuild in-memory state by replaying every
    logged set and delete in order.
    """

    def recover(self, wal: WAL, table: OrderedTable) -> tuple[str | None, int, int]:
        """
        Recover a table by replaying log entries.

        Args:
            wal: The log to replay.
            table: Empty table to populate.

        Returns:
            (key type recorded in the log header or None, entries replayed,
            offset just past the last complete entry)

        Raises:
            WALCorruptionError: If an entry fails its checksum.
        """
        key_type = None
        replayed = 0

        entries = iter(wal)
        for entry in entries:
            if entry.key == HEADER_KEY:
                if entry.value.is_meta():
                    key_type = parse_header(entry.value)
                continue
            table.apply(entry.key, entry.value)
            replayed += 1

        return key_type, replayed, entries.valid_offset
