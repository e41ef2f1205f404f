"""Item storage on top of the slab allocator: lookup, insert, annex, delete."""

from __future__ import annotations

import logging

from kvcache.clock import Clock
from kvcache.slab.item import (
    Item,
    ItemNoMemoryError,
    ItemOversizedError,
)
from kvcache.slab.profile import SLABCLASS_INVALID_ID
from kvcache.slab.slab import SlabAllocator, SlabMetrics, SlabOptions

log = logging.getLogger(__name__)

KEY_MAXLEN = 255


class ItemStore:
    """Key/value items kept in slabs and indexed by a hash table.

    Expiry is lazy: an expired or flushed item is removed the next time it
    is looked up.
    """

    def __init__(
        self,
        options: SlabOptions | None = None,
        metrics: SlabMetrics | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.allocator = SlabAllocator(options, metrics)
        self.metrics = self.allocator.metrics
        self.hash_table = self.allocator.hash_table
        self.clock = clock if clock is not None else Clock()
        self.flush_at = 0

    def _expired(self, it: Item) -> bool:
        now = self.clock.now
        return (0 < it.expire_at < now) or it.create_at <= self.flush_at

    def _alloc(self, klen: int, vlen: int) -> Item:
        log.debug("allocate item with klen %d vlen %d", klen, vlen)
        cid = self.allocator.item_slabid(klen, vlen)
        if cid == SLABCLASS_INVALID_ID:
            raise ItemOversizedError(
                f"item with key size {klen} and value size {vlen} is oversized"
            )
        try:
            it = self.allocator.get_item(cid)
        except ItemNoMemoryError:
            self.metrics.item_req_ex += 1
            log.warning("server error on allocating item in slab %d", cid)
            raise
        it.reset()
        self.metrics.item_req += 1
        return it

    def _link(self, it: Item) -> None:
        it.is_linked = True
        try:
            self.hash_table.put(it)
        except KeyError:
            it.is_linked = False
            self.allocator.put_item(it)
            raise
        m = self.metrics
        m.item_curr += 1
        m.item_insert += 1
        m.item_keyval_byte += it.klen + it.vlen
        m.item_val_byte += it.vlen

    def _unlink(self, it: Item, release: bool = True) -> None:
        if it.is_linked:
            it.is_linked = False
            self.hash_table.delete(it.key)
        if release:
            self.allocator.put_item(it)
        m = self.metrics
        m.item_curr -= 1
        m.item_remove += 1
        m.item_keyval_byte -= it.klen + it.vlen
        m.item_val_byte -= it.vlen

    def get(self, key: bytes) -> Item | None:
        """Return the live item for ``key``; expired items are removed."""
        it = self.hash_table.get(key)
        if it is None:
            log.debug("get item %r not found", key)
            return None
        if self._expired(it):
            self._unlink(it)
            log.debug("get item %r expired and nuked", key)
            return None
        return it

    def insert(
        self, key: bytes, val: bytes, dataflag: int = 0, expire_at: int = 0
    ) -> Item:
        """Store a new item; the key must not be linked already."""
        key = bytes(key)
        val = bytes(val)
        if len(key) > KEY_MAXLEN:
            raise ValueError(f"key longer than {KEY_MAXLEN} bytes")
        it = self._alloc(len(key), len(val))
        it.expire_at = expire_at
        it.create_at = self.clock.now
        it.dataflag = dataflag
        it.key = key
        it.value = val
        self.allocator.set_cas(it)
        self._link(it)
        return it

    def _annex_new(self, oit: Item, value: bytes, raligned: bool) -> Item:
        was_linked = oit.is_linked
        nit = self._alloc(oit.klen, len(value))
        nit.key = oit.key
        nit.expire_at = oit.expire_at
        nit.create_at = self.clock.now
        nit.dataflag = oit.dataflag
        self.allocator.set_cas(nit)
        nit.is_raligned = raligned
        nit.value = value
        # allocating may have evicted the slab holding the old item
        evicted = was_linked and not oit.is_linked
        self._unlink(oit, release=not evicted)
        self._link(nit)
        return nit

    def annex(self, item: Item, val: bytes, append: bool) -> Item:
        """Append or prepend ``val`` to the item's value.

        Returns the item now holding the value, which is a new item when the
        value had to move.
        """
        val = bytes(val)
        ntotal = item.vlen + len(val)
        cid = self.allocator.item_slabid(item.klen, ntotal)
        if cid == SLABCLASS_INVALID_ID:
            log.info(
                "client error: annex results in oversized item with key size "
                "%d old value size %d and new value size %d",
                item.klen, item.vlen, ntotal,
            )
            raise ItemOversizedError("annex operation results in oversized item")

        in_place = cid == item.id and (item.is_raligned != append)
        if in_place:
            item.value = item.value + val if append else val + item.value
            self.metrics.item_keyval_byte += len(val)
            self.metrics.item_val_byte += len(val)
            self.allocator.set_cas(item)
            return item
        if append:
            return self._annex_new(item, item.value + val, raligned=False)
        return self._annex_new(item, val + item.value, raligned=True)

    def update(self, item: Item, val: bytes) -> Item:
        """Replace the value in place; it must fit the item's slab class."""
        val = bytes(val)
        if self.allocator.item_slabid(item.klen, len(val)) != item.id:
            raise ValueError("new value does not fit the item's slab class")
        item.value = val
        self.allocator.set_cas(item)
        return item

    def delete(self, key: bytes) -> bool:
        """Remove ``key``; returns whether a live item was removed."""
        it = self.get(key)
        if it is None:
            return False
        self._unlink(it)
        return True

    def flush(self) -> None:
        """Expire every item created up to the current second."""
        self.clock.update()
        self.flush_at = self.clock.now
        log.info("all keys flushed at %d", self.flush_at)