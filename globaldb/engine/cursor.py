"""
Cursor - stateful forward iteration over a store, a namespace or the
namespace directory.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from globaldb.engine.namespace import Namespace
from globaldb.models.exceptions import CodecError
from globaldb.models.key import Key, KeyType, Segment, is_start, pack, unpack

if TYPE_CHECKING:
    from globaldb.engine.store import Store


@dataclass(frozen=True)
class CursorKey:
    """A key emitted by a cursor opened without getdata."""

    key: Key


@dataclass(frozen=True)
class CursorRecord:
    """A key and its value, emitted by a cursor opened with getdata."""

    key: Key
    data: bytes

    @property
    def value(self) -> str:
        return self.data.decode("utf-8")


@dataclass(frozen=True)
class GroupHeader:
    """
    Emitted by multilevel cursors before the first record under a new
    key prefix. `key` is the prefix; `segment` is its last subscript.
    """

    key: tuple

    @property
    def segment(self) -> Segment:
        return self.key[-1]


CursorResult = CursorKey | CursorRecord | GroupHeader


class Cursor:
    """
    Forward-only cursor.

    The cursor remembers only its last position and re-seeks from it on
    every step, so records written or deleted between steps are seen (or
    skipped) according to the table at the time of the step.

    Modes:
    - flat: one result per record, in key order
    - multilevel: as flat, preceded by a GroupHeader whenever the scan
      descends into a key prefix it has not emitted yet
    - globaldirectory: one CursorKey per namespace name

    Thread Safety:
    - Each step is atomic with respect to the store
    - A cursor object must not be shared between threads
    """

    def __init__(
        self,
        store: "Store",
        namespace: Namespace | str | None = None,
        key: Any = None,
        *,
        multilevel: bool = False,
        getdata: bool = False,
        globaldirectory: bool = False,
    ) -> None:
        key_type = store.key_type
        self._store = store
        self._getdata = getdata
        self._exhausted = False
        self._directory = globaldirectory
        self._position: bytes | None = None
        self._path: tuple = ()

        if globaldirectory:
            if key_type is not KeyType.M:
                raise CodecError("globaldirectory cursors require key_type 'm'")
            if namespace is not None:
                raise ValueError("globaldirectory cursors scan all namespaces")
            if not is_start(key) and not isinstance(key, str):
                raise CodecError(f"Namespace names are strings, got {key!r}")
            self._last_name = key or None
            self._multilevel = False
            return

        if namespace is not None:
            if isinstance(namespace, str):
                namespace = store.namespace(namespace)
            elif namespace.store is not store:
                raise ValueError(f"{namespace!r} belongs to a different store")
            self._base = namespace._prefix
            self._tuple_keys = True
            if not is_start(key):
                start = key if isinstance(key, tuple) else (key,)
                self._position = self._base + pack(start)
                self._path = start
        else:
            self._base = b""
            self._tuple_keys = key_type is KeyType.M
            if not is_start(key):
                self._position = store._encode(key)
                if self._tuple_keys:
                    self._path = store._decode(self._position)

        self._multilevel = multilevel and self._tuple_keys

    @property
    def exhausted(self) -> bool:
        return self._exhausted

    def next(self) -> CursorResult | None:
        """
        Advance the cursor.

        Returns:
            The next result, or None once the scan is exhausted. Further
            calls after exhaustion keep returning None.
        """
        if self._exhausted:
            return None
        if self._directory:
            return self._next_name()

        if self._position is None:
            entry = self._store._seek(self._base, inclusive=True)
        else:
            entry = self._store._seek(self._position)
        if entry is None or not entry[0].startswith(self._base):
            self._exhausted = True
            return None

        raw, value = entry
        key = self._decode(raw)

        if self._multilevel:
            common = 0
            for previous, current in zip(self._path, key):
                if previous != current:
                    break
                common += 1
            if len(key) > common + 1:
                self._path = key[: common + 1]
                return GroupHeader(self._path)
            self._path = key

        self._position = raw
        if self._getdata:
            return CursorRecord(key, value.data)
        return CursorKey(key)

    def _next_name(self) -> CursorKey | None:
        name = self._store._order(b"", self._last_name, forward=True)
        if name == "":
            self._exhausted = True
            return None
        self._last_name = name
        return CursorKey(name)

    def _decode(self, raw: bytes) -> Key:
        if self._base:
            return unpack(raw[len(self._base) :])
        return self._store._decode(raw)

    def __iter__(self) -> Iterator[CursorResult]:
        while True:
            result = self.next()
            if result is None:
                return
            yield result
