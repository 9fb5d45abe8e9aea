"""Key-value record storage.

Engines receive a store instead of reaching for a global, so a deployment can
swap the in-process dict for a durable backend without touching them.
Engines hold no engine-wide lock around store calls; RecordLocks serializes
updates of a single record, so a slow backend only delays writers of that
record.
"""

from __future__ import annotations

import asyncio
from typing import Generic, Protocol, TypeVar

T = TypeVar("T")


class KeyValueStore(Protocol[T]):
    """Minimal get/put capability used by the engines."""

    async def get(self, key: str) -> T | None: ...

    async def put(self, key: str, value: T) -> None: ...


class InMemoryStore(Generic[T]):
    """Dict-backed store. Writes are visible to later reads in the same process."""

    def __init__(self) -> None:
        self._records: dict[str, T] = {}

    async def get(self, key: str) -> T | None:
        return self._records.get(key)

    async def put(self, key: str, value: T) -> None:
        self._records[key] = value

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, key: object) -> bool:
        return key in self._records


class RecordLocks:
    """One asyncio.Lock per record key.

    Read-modify-write on a record is serialized against other writers of the
    same record only; calls on different records never wait on each other.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def __call__(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._locks)
