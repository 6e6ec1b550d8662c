"""
AsyncStore - asyncio facade over Store.

Every call runs the blocking Store method in the default thread pool, so
log fsyncs never stall the event loop. Cursors are not offered: they are
stateful and bound to the caller's thread of control.
"""

import asyncio
import functools
from collections.abc import Callable, Mapping
from typing import Any

from globaldb.engine.config import StoreConfig
from globaldb.engine.namespace import Namespace
from globaldb.engine.store import Store
from globaldb.models.key import Key, Segment


async def _run(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(fn, *args, **kwargs))


class AsyncStore:
    """
    Async wrapper for Store.

    Usage:
        async with await AsyncStore.create(key_type="m", env_dir=path) as db:
            await db.set(("patient", 1), "Jane")
            await db.namespace("patient").next("")
    """

    def __init__(self, store: Store | None = None) -> None:
        self._store = store or Store()

    @classmethod
    async def create(
        cls, config: StoreConfig | Mapping[str, Any] | None = None, **options: Any
    ) -> "AsyncStore":
        """
        Async factory method to create and open a store.

        Returns:
            Opened AsyncStore instance.
        """
        db = cls()
        await db.open(config, **options)
        return db

    @property
    def store(self) -> Store:
        """The underlying synchronous store."""
        return self._store

    async def open(
        self, config: StoreConfig | Mapping[str, Any] | None = None, **options: Any
    ) -> "AsyncStore":
        await _run(self._store.open, config, **options)
        return self

    async def close(self) -> None:
        await _run(self._store.close)

    async def __aenter__(self) -> "AsyncStore":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def set(self, key: Key, value: str | bytes | int | float) -> None:
        await _run(self._store.set, key, value)

    async def get(self, key: Key) -> str:
        return await _run(self._store.get, key)

    async def get_bytes(self, key: Key) -> bytes:
        return await _run(self._store.get_bytes, key)

    async def defined(self, key: Key) -> bool:
        return await _run(self._store.defined, key)

    async def delete(self, key: Key) -> bool:
        return await _run(self._store.delete, key)

    async def increment(self, key: Key, by: int | float = 1) -> int | float:
        return await _run(self._store.increment, key, by)

    async def next(self, key: Key | None = "") -> Segment:
        return await _run(self._store.next, key)

    async def previous(self, key: Key | None = "") -> Segment:
        return await _run(self._store.previous, key)

    async def namespaces(self) -> list[str]:
        return await _run(self._store.namespaces)

    async def compact(self) -> int:
        return await _run(self._store.compact)

    def namespace(self, name: str, *prefix: Segment) -> "AsyncNamespace":
        return AsyncNamespace(self._store.namespace(name, *prefix))


class AsyncNamespace:
    """Async wrapper for Namespace."""

    def __init__(self, namespace: Namespace) -> None:
        self._namespace = namespace

    @property
    def name(self) -> str:
        return self._namespace.name

    @property
    def prefix(self) -> tuple:
        return self._namespace.prefix

    async def set(self, *args: Any) -> None:
        await _run(self._namespace.set, *args)

    async def get(self, *subscripts: Segment) -> str:
        return await _run(self._namespace.get, *subscripts)

    async def get_bytes(self, *subscripts: Segment) -> bytes:
        return await _run(self._namespace.get_bytes, *subscripts)

    async def defined(self, *subscripts: Segment) -> bool:
        return await _run(self._namespace.defined, *subscripts)

    async def data(self, *subscripts: Segment) -> int:
        return await _run(self._namespace.data, *subscripts)

    async def delete(self, *subscripts: Segment) -> bool:
        return await _run(self._namespace.delete, *subscripts)

    async def delete_tree(self, *subscripts: Segment) -> int:
        return await _run(self._namespace.delete_tree, *subscripts)

    async def increment(self, *subscripts: Segment, by: int | float = 1) -> int | float:
        return await _run(self._namespace.increment, *subscripts, by=by)

    async def next(self, *subscripts: Segment) -> Segment:
        return await _run(self._namespace.next, *subscripts)

    async def previous(self, *subscripts: Segment) -> Segment:
        return await _run(self._namespace.previous, *subscripts)

    async def subscripts(self, *subscripts: Segment) -> list[Segment]:
        return await _run(self._namespace.subscripts, *subscripts)

    async def merge(self, source: "AsyncNamespace | Namespace", *subscripts: Segment) -> int:
        if isinstance(source, AsyncNamespace):
            source = source._namespace
        return await _run(self._namespace.merge, source, *subscripts)
