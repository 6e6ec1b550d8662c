"""
Namespace - handle on one "global" of a key_type "m" store.

A namespace is the set of records whose tuple key starts with the same
name. Subscripts passed to a handle are appended to the name (and to any
fixed prefix the handle was created with) to form the full key.
"""

import logging
from contextlib import ExitStack
from typing import TYPE_CHECKING, Any

from globaldb.models.exceptions import CodecError, NotFoundError
from globaldb.models.key import MAX_SEGMENTS, Segment, pack, unpack
from globaldb.models.value import to_value

if TYPE_CHECKING:
    from globaldb.engine.cursor import Cursor
    from globaldb.engine.store import Store

logger = logging.getLogger(__name__)


class Namespace:
    """
    Handle on a namespace, e.g. `db.namespace("admission")`.

    Usage:
        admission = db.namespace("admission")
        admission.set(1, "2020-11-12", "Ward 3")
        admission.get(1, "2020-11-12")        # "Ward 3"
        admission.next(1, "")                 # first date for patient 1

    Handles are cheap and hold no state besides the store and the prefix.
    """

    def __init__(self, store: "Store", name: str, *prefix: Segment) -> None:
        if not isinstance(name, str) or not name:
            raise CodecError(f"Namespace name must be a non-empty string, got {name!r}")
        store._require_m("namespace()")
        self._store = store
        self._name = name
        self._fixed = tuple(prefix)
        self._prefix = pack((name, *prefix))

    @property
    def name(self) -> str:
        return self._name

    @property
    def prefix(self) -> tuple:
        """Fixed leading subscripts bound to this handle."""
        return self._fixed

    @property
    def store(self) -> "Store":
        return self._store

    def key(self, *subscripts: Segment) -> tuple:
        """Full store key for `subscripts`."""
        return (self._name, *self._fixed, *subscripts)

    def _encode(self, subscripts: tuple) -> bytes:
        return self._prefix + pack(subscripts)

    def __repr__(self) -> str:
        return f"Namespace({', '.join(repr(s) for s in (self._name, *self._fixed))})"

    # ------------------------------------------------------------------
    # Point API
    # ------------------------------------------------------------------

    def set(self, *args: Any) -> None:
        """
        Set a node: `set(*subscripts, value)`.

        With no subscripts the namespace root (or the fixed prefix node)
        itself is set.
        """
        if not args:
            raise TypeError("set() requires a value")
        *subscripts, value = args
        val = to_value(value)
        raw = self._encode(tuple(subscripts))
        with self._store._lock:
            self._store._check_open()
            self._store._write(raw, val)
        logger.debug("set %r", self.key(*subscripts))

    def get(self, *subscripts: Segment) -> str:
        """
        Value of a node as text.

        Raises:
            NotFoundError: If the node holds no value.
        """
        return self.get_bytes(*subscripts).decode("utf-8")

    def get_bytes(self, *subscripts: Segment) -> bytes:
        value = self._store._read(self._encode(subscripts))
        if value is None:
            raise NotFoundError(self.key(*subscripts))
        return value.data

    def defined(self, *subscripts: Segment) -> bool:
        """True if the node holds a value."""
        has_value, _ = self._store._node_state(self._encode(subscripts))
        return has_value

    def data(self, *subscripts: Segment) -> int:
        """
        Describe a node the way M's $DATA does.

        Returns:
            0: no value, no descendants
            1: value, no descendants
            10: descendants but no value
            11: value and descendants
        """
        has_value, has_descendants = self._store._node_state(self._encode(subscripts))
        return (1 if has_value else 0) + (10 if has_descendants else 0)

    def delete(self, *subscripts: Segment) -> bool:
        """
        Delete the value at a node, leaving its descendants.

        Returns:
            True if the node held a value.
        """
        raw = self._encode(subscripts)
        with self._store._lock:
            self._store._check_open()
            existed = self._store._erase(raw)
        logger.debug("delete %r -> %s", self.key(*subscripts), existed)
        return existed

    def delete_tree(self, *subscripts: Segment) -> int:
        """
        Delete a node and all of its descendants.

        Returns:
            Number of records removed.
        """
        removed = self._store._erase_tree(self._encode(subscripts))
        logger.debug("delete_tree %r -> %d records", self.key(*subscripts), removed)
        return removed

    def increment(self, *subscripts: Segment, by: int | float = 1) -> int | float:
        """Atomically add `by` to the node's numeric value (absent counts as 0)."""
        return self._store._increment(self._encode(subscripts), by)

    # ------------------------------------------------------------------
    # Ordered iteration
    # ------------------------------------------------------------------

    def next(self, *subscripts: Segment) -> Segment:
        """
        Next sibling subscript at the level of the last subscript.

        `next(1, "")` gives the first subscript under (1,); `next()` gives
        the first top-level subscript.

        Returns:
            The subscript, or "" when there is none.
        """
        return self._order(subscripts, forward=True)

    def previous(self, *subscripts: Segment) -> Segment:
        """
        Previous sibling subscript at the level of the last subscript.

        `previous(1, "")` gives the last subscript under (1,).

        Returns:
            The subscript, or "" when there is none.
        """
        return self._order(subscripts, forward=False)

    def _order(self, subscripts: tuple, forward: bool) -> Segment:
        if not subscripts:
            subscripts = ("",)
        *fixed, pivot = subscripts
        return self._store._order(self._encode(tuple(fixed)), pivot, forward)

    def subscripts(self, *subscripts: Segment) -> list[Segment]:
        """All child subscripts directly under a node, in order."""
        prefix = self._encode(subscripts)
        children = []
        child = self._store._order(prefix, "", forward=True)
        while child != "":
            children.append(child)
            child = self._store._order(prefix, child, forward=True)
        return children

    # ------------------------------------------------------------------
    # Subtree operations
    # ------------------------------------------------------------------

    def merge(self, source: "Namespace", *subscripts: Segment) -> int:
        """
        Copy every record under `source` into this namespace at `subscripts`,
        overwriting existing records and leaving others in place.

        The copy is atomic: both stores stay locked from the read of `source`
        until the last record is written, and nothing is written if any
        copied key would exceed MAX_SEGMENTS.

        Returns:
            Number of records copied.

        Raises:
            CodecError: A copied key would have more than MAX_SEGMENTS segments.
        """
        target = self._encode(subscripts)
        target_depth = 1 + len(self._fixed) + len(subscripts)
        offset = len(source._prefix)

        # One lock per distinct store, always taken in the same order
        stores = {id(store): store for store in (self._store, source._store)}
        with ExitStack() as stack:
            for _, store in sorted(stores.items()):
                stack.enter_context(store._lock)

            self._store._check_open()
            records = source._store._subtree(source._prefix)
            if not records:
                return 0

            depth = target_depth + max(len(unpack(raw[offset:])) for raw, _ in records)
            if depth > MAX_SEGMENTS:
                raise CodecError(
                    f"Merging {source!r} into {self!r} would create keys with {depth} "
                    f"segments (at most {MAX_SEGMENTS})"
                )

            copied = [(target + raw[offset:], value) for raw, value in records]
            self._store._write_many(copied)

        logger.debug("merge %r into %r -> %d records", source, self, len(copied))
        return len(copied)

    def open_cursor(
        self,
        key: Any = None,
        *,
        multilevel: bool = False,
        getdata: bool = False,
    ) -> "Cursor":
        """Open a forward cursor over this namespace."""
        return self._store.open_cursor(self, key, multilevel=multilevel, getdata=getdata)
