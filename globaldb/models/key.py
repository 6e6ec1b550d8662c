"""
Key codec: ordered byte encoding for integer, string and tuple keys.

Every key is stored as the concatenation of self-delimiting segment
encodings, so byte-wise comparison of encoded keys matches the natural
order of the keys they encode:

- Integer segment: [0x15][8 bytes big-endian, sign bit flipped]
- String segment:  [0x25][UTF-8 bytes, 0x00 escaped as 0x00 0xFF][0x00 0x00]

Integers sort before strings at the same segment position, and a tuple sorts
directly before its own extensions.
"""

from enum import Enum

from globaldb.models.exceptions import CodecError

Segment = int | str
Key = int | str | tuple

INT_TAG = 0x15
STR_TAG = 0x25
INT_WIDTH = 8
INT_OFFSET = 1 << 63
STR_TERMINATOR = b"\x00\x00"
ESCAPED_NUL = b"\x00\xff"

# Greater than any segment tag: appended to a prefix it bounds the whole subtree.
PREFIX_END = b"\xff"

MAX_SEGMENTS = 64

# Returned by next()/previous() when there is no further key; also accepted as a start pivot.
END = ""


def is_start(pivot) -> bool:
    """True if `pivot` asks for a walk from the first (or last) key."""
    return pivot is None or (isinstance(pivot, str) and pivot == END)


class KeyType(str, Enum):
    """Shape of the keys a store accepts."""

    INT = "int"
    STR = "str"
    M = "m"  # tuple keys led by a namespace name

    @classmethod
    def parse(cls, value: "str | KeyType") -> "KeyType":
        if isinstance(value, KeyType):
            return value
        name = str(value).strip().lower()
        if name == "tuple":
            return cls.M
        try:
            return cls(name)
        except ValueError:
            raise CodecError(
                f"Unsupported key_type {value!r}; expected one of int, str, m"
            ) from None


def encode_segment(segment: Segment) -> bytes:
    """Encode a single key segment."""
    if isinstance(segment, bool):
        raise CodecError("bool is not a valid key segment")

    if isinstance(segment, int):
        if not -INT_OFFSET <= segment < INT_OFFSET:
            raise CodecError(f"Integer key out of 64-bit range: {segment}")
        return bytes([INT_TAG]) + (segment + INT_OFFSET).to_bytes(INT_WIDTH, "big")

    if isinstance(segment, str):
        if not segment:
            raise CodecError("Empty string is reserved as the iteration sentinel")
        body = segment.encode("utf-8").replace(b"\x00", ESCAPED_NUL)
        return bytes([STR_TAG]) + body + STR_TERMINATOR

    raise CodecError(
        f"Unsupported key segment type: {type(segment).__name__}"
    )


def decode_segment(data: bytes, offset: int = 0) -> tuple[Segment, int]:
    """
    Decode the segment starting at offset.

    Returns:
        (segment, offset just past the segment)
    """
    if offset >= len(data):
        raise CodecError(f"Truncated key: no segment at offset {offset}")

    tag = data[offset]
    if tag == INT_TAG:
        end = offset + 1 + INT_WIDTH
        if end > len(data):
            raise CodecError(f"Truncated integer segment at offset {offset}")
        return int.from_bytes(data[offset + 1 : end], "big") - INT_OFFSET, end

    if tag == STR_TAG:
        body = bytearray()
        pos = offset + 1
        while True:
            nul = data.find(b"\x00", pos)
            if nul < 0 or nul + 1 >= len(data):
                raise CodecError(f"Unterminated string segment at offset {offset}")
            body += data[pos:nul]
            marker = data[nul + 1]
            pos = nul + 2
            if marker == 0x00:
                break
            if marker != 0xFF:
                raise CodecError(f"Invalid escape 0x00 0x{marker:02x} at offset {nul}")
            body.append(0)

        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise CodecError(f"Invalid UTF-8 in string segment at offset {offset}") from e
        if not text:
            raise CodecError(f"Empty string segment at offset {offset}")
        return text, pos

    raise CodecError(f"Unknown segment tag 0x{tag:02x} at offset {offset}")


def pack(segments: tuple) -> bytes:
    """Encode a tuple of segments."""
    if len(segments) > MAX_SEGMENTS:
        raise CodecError(
            f"Key has {len(segments)} segments; maximum is {MAX_SEGMENTS}"
        )
    return b"".join(encode_segment(segment) for segment in segments)


def unpack(data: bytes) -> tuple:
    """Decode a concatenation of segments back into a tuple."""
    segments = []
    offset = 0
    while offset < len(data):
        segment, offset = decode_segment(data, offset)
        segments.append(segment)
    return tuple(segments)


class KeyCodec:
    """
    Encoder/decoder bound to one key type.

    Scalar key types round-trip scalars; the M key type round-trips tuples
    whose first segment is a namespace name.
    """

    def __init__(self, key_type: "KeyType | str") -> None:
        self.key_type = KeyType.parse(key_type)

    def encode(self, key: Key) -> bytes:
        if self.key_type is KeyType.INT:
            if isinstance(key, bool) or not isinstance(key, int):
                raise CodecError(f"Store uses int keys, got {key!r}")
            return encode_segment(key)

        if self.key_type is KeyType.STR:
            if not isinstance(key, str):
                raise CodecError(f"Store uses str keys, got {key!r}")
            return encode_segment(key)

        if not isinstance(key, tuple) or not key:
            raise CodecError(f"Store uses tuple keys, got {key!r}")
        if not isinstance(key[0], str):
            raise CodecError(f"Tuple keys must start with a namespace name, got {key!r}")
        return pack(key)

    def decode(self, data: bytes) -> Key:
        segments = unpack(bytes(data))
        if not segments:
            raise CodecError("Empty key")

        if self.key_type is KeyType.M:
            if not isinstance(segments[0], str):
                raise CodecError("Tuple key does not start with a namespace name")
            return segments

        if len(segments) != 1:
            raise CodecError(
                f"Expected a single {self.key_type.value} segment, found {len(segments)}"
            )
        (key,) = segments
        expected = int if self.key_type is KeyType.INT else str
        if not isinstance(key, expected):
            raise CodecError(
                f"Expected a {self.key_type.value} key, found {type(key).__name__}"
            )
        return key
