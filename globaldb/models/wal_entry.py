"""
WALEntry dataclass for record log entries.
"""

from dataclasses import dataclass

from globaldb.models.value import Value


@dataclass
class WALEntry:
    """
    Represents a single entry in the record log.

    Attributes:
        key: The encoded key being written (empty for the log header).
        value: The value being written, a tombstone, or header metadata.
        seq: Sequence number for ordering entries.
    """

    key: bytes
    value: Value
    seq: int

    def __bytes__(self) -> bytes:
        """
        Serialize the entry to bytes for storage.

        Format: [seq:8][key_len:4][key][value_len:4][value_bytes]
        """
        value_bytes = bytes(self.value)

        return (
            self.seq.to_bytes(8, "big")
            + len(self.key).to_bytes(4, "big")
            + self.key
            + len(value_bytes).to_bytes(4, "big")
            + value_bytes
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> "WALEntry":
        """Deserialize from bytes."""
        offset = 0

        # Read sequence number
        seq = int.from_bytes(data[offset : offset + 8], "big")
        offset += 8

        # Read key
        key_len = int.from_bytes(data[offset : offset + 4], "big")
        offset += 4
        key = bytes(data[offset : offset + key_len])
        offset += key_len

        # Read value
        value_len = int.from_bytes(data[offset : offset + 4], "big")
        offset += 4
        value = Value.from_bytes(data[offset : offset + value_len])

        return cls(key=key, value=value, seq=seq)
