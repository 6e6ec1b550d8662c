"""
Value and ValueType for representing stored data with metadata.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum


class ValueType(IntEnum):
    """Type of value stored in the database."""

    REGULAR = 0  # Normal value
    TOMBSTONE = 1  # Deletion marker
    META = 2  # Store metadata (log header)


@dataclass
class Value:
    """
    Represents a value stored in the database with metadata.

    Attributes:
        data: The raw bytes stored (None for tombstones).
        ts: Timestamp when the value was written.
        type: Whether this is a regular value, a tombstone or metadata.
    """

    data: bytes | None
    ts: datetime
    type: ValueType = ValueType.REGULAR
    _cached_bytes: bytes = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Cache the serialized bytes on initialization."""
        ts_bytes = self.ts.isoformat().encode("utf-8")
        type_byte = self.type.to_bytes(1, "big")
        data_bytes = self.data if self.data is not None else b""

        # Format: [type:1][ts_len:4][ts][data_len:4][data]
        self._cached_bytes = (
            type_byte
            + len(ts_bytes).to_bytes(4, "big")
            + ts_bytes
            + len(data_bytes).to_bytes(4, "big")
            + data_bytes
        )

    @classmethod
    def regular(cls, data: bytes | str, ts: datetime | None = None) -> "Value":
        if isinstance(data, str):
            data = data.encode("utf-8")
        return cls(data=bytes(data), ts=ts or datetime.now(), type=ValueType.REGULAR)

    @classmethod
    def tombstone(cls, ts: datetime | None = None) -> "Value":
        return cls(data=None, ts=ts or datetime.now(), type=ValueType.TOMBSTONE)

    @classmethod
    def meta(cls, data: bytes | str, ts: datetime | None = None) -> "Value":
        if isinstance(data, str):
            data = data.encode("utf-8")
        return cls(data=bytes(data), ts=ts or datetime.now(), type=ValueType.META)

    def is_tombstone(self) -> bool:
        return self.type == ValueType.TOMBSTONE

    def is_meta(self) -> bool:
        return self.type == ValueType.META

    def text(self) -> str:
        """Decode the stored bytes as UTF-8."""
        return (self.data or b"").decode("utf-8")

    def __bytes__(self) -> bytes:
        """Serialize to bytes for storage."""
        return self._cached_bytes

    @classmethod
    def from_bytes(cls, data: bytes) -> "Value":
        """Deserialize from bytes."""
        offset = 0

        # Read type
        value_type = ValueType(data[offset])
        offset += 1

        # Read timestamp
        ts_len = int.from_bytes(data[offset : offset + 4], "big")
        offset += 4
        ts_str = data[offset : offset + ts_len].decode("utf-8")
        ts = datetime.fromisoformat(ts_str)
        offset += ts_len

        # Read data
        data_len = int.from_bytes(data[offset : offset + 4], "big")
        offset += 4
        if value_type == ValueType.TOMBSTONE:
            value_data = None
        else:
            value_data = bytes(data[offset : offset + data_len])

        return cls(data=value_data, ts=ts, type=value_type)


def to_value(value: "str | bytes | int | float") -> Value:
    """Convert a caller-supplied value (str, bytes or number) to a regular Value."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return Value.regular(bytes(value))
    if isinstance(value, str):
        return Value.regular(value)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return Value.regular(format_number(value))
    raise TypeError(f"Values must be str, bytes or numbers, got {type(value).__name__}")


def format_number(number: int | float) -> str:
    """Canonical text for a number: integral floats lose their fraction."""
    if isinstance(number, float) and number.is_integer():
        return str(int(number))
    return str(number)


def parse_number(text: str) -> int | float:
    """Parse stored text as a number; empty text counts as 0."""
    text = text.strip()
    if not text:
        return 0
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        raise ValueError(f"Stored value is not numeric: {text!r}") from None
