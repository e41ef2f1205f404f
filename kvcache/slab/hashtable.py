"""Chained hash table indexing slab items by key."""

from __future__ import annotations

from typing import Any

from kvcache.cuckoo.table import hashlittle


def _hashsize(power: int) -> int:
    return 1 << power


def _hashmask(power: int) -> int:
    return _hashsize(power) - 1


class HashTable:
    """Hash table of ``2 ** hash_power`` buckets, each a chain of items.

    Items are any objects with a ``key`` attribute holding bytes.  A key may
    be present at most once.
    """

    def __init__(self, hash_power: int) -> None:
        if hash_power <= 0:
            raise ValueError("hash_power must be positive")
        self.hash_power = hash_power
        self._buckets: list[list[Any]] = [[] for _ in range(_hashsize(hash_power))]
        self._count = 0

    def _bucket(self, key: bytes) -> list[Any]:
        return self._buckets[hashlittle(key, 0) & _hashmask(self.hash_power)]

    def put(self, item: Any) -> None:
        """Link ``item`` at the head of its bucket; its key must be absent."""
        key = bytes(item.key)
        if self.get(key) is not None:
            raise KeyError(key)
        self._bucket(key).insert(0, item)
        self._count += 1

    def get(self, key: bytes) -> Any | None:
        """Return the item stored under ``key``, or ``None``."""
        if not key:
            raise ValueError("key must not be empty")
        key = bytes(key)
        return next((it for it in self._bucket(key) if it.key == key), None)

    def delete(self, key: bytes) -> None:
        """Unlink the item stored under ``key``; it must be present."""
        if not key:
            raise ValueError("key must not be empty")
        key = bytes(key)
        bucket = self._bucket(key)
        for pos, it in enumerate(bucket):
            if it.key == key:
                del bucket[pos]
                self._count -= 1
                return
        raise KeyError(key)

    def __len__(self) -> int:
        return self._count