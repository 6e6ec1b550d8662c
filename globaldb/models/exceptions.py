"""
Custom exceptions for the store.
"""


class StoreError(Exception):
    """Base class for every error raised by globaldb."""


class OpenError(StoreError):
    """
    Raised when a store cannot be opened.

    Covers invalid configuration, an unusable storage location, a key type
    that does not match existing data, and a log that fails verification.
    The store is unusable after this error.
    """


class NotOpenError(StoreError):
    """Raised when an operation is attempted before the store is opened."""


class ClosedError(NotOpenError):
    """Raised when an operation is attempted after the store was closed."""


class NotFoundError(StoreError, KeyError):
    """Raised by get() when the key holds no value."""

    def __init__(self, key: object):
        self.key = key
        super().__init__(key)

    def __str__(self) -> str:
        return f"Key not found: {self.key!r}"


class CodecError(StoreError, ValueError):
    """
    Raised when a key cannot be encoded or decoded.

    Encoding fails for keys of the wrong shape for the store's key type,
    integers outside the signed 64-bit range, empty strings and overlong
    tuples. Decoding fails for malformed byte sequences.
    """


class WALCorruptionError(StoreError):
    """
    Raised when log entry corruption is detected via checksum mismatch.

    This is a fail-fast error indicating data integrity issues.
    """

    def __init__(self, expected: int, actual: int, entry_offset: int):
        """
        Initialize corruption error.

        Args:
            expected: Expected CRC32 checksum.
            actual: Actual CRC32 checksum computed.
            entry_offset: File offset where corruption detected.
        """
        self.expected = expected
        self.actual = actual
        self.entry_offset = entry_offset
        super().__init__(
            f"Log corruption detected at offset {entry_offset}: "
            f"expected CRC32 0x{expected:08x}, got 0x{actual:08x}"
        )
