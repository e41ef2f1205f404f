"""Slab allocator: fixed-size slabs split into equal item chunks per class."""

from __future__ import annotations

import enum
import logging
import random
from dataclasses import dataclass, field

from kvcache.slab.hashtable import HashTable
from kvcache.slab.item import Item, ItemNoMemoryError, item_ntotal
from kvcache.slab.profile import (
    ITEM_HDR_SIZE,
    SLAB_HDR_SIZE,
    ProfileError,
    SlabClass,
    find_slab_id,
    generate_profile,
    parse_profile,
)

log = logging.getLogger(__name__)

MiB = 1024 * 1024

SLAB_SIZE = MiB
SLAB_MEM = 64 * MiB
SLAB_PREALLOC = True
SLAB_USE_FREEQ = True
SLAB_USE_CAS = True
ITEM_SIZE_MIN = 44
ITEM_SIZE_MAX = SLAB_SIZE - 32
ITEM_FACTOR = 1.25
HASH_POWER = 16


class EvictPolicy(enum.IntFlag):
    """Which slab to reclaim when no new slab can be allocated."""

    NONE = 0
    RS = 1  # random slab
    CS = 2  # least recently created slab
    INVALID = 4


@dataclass
class SlabOptions:
    slab_size: int = SLAB_SIZE
    slab_mem: int = SLAB_MEM
    prealloc: bool = SLAB_PREALLOC
    evict_opt: EvictPolicy = EvictPolicy.RS
    use_freeq: bool = SLAB_USE_FREEQ
    profile: str | None = None
    item_min: int = ITEM_SIZE_MIN
    item_max: int = ITEM_SIZE_MAX
    item_growth: float = ITEM_FACTOR
    use_cas: bool = SLAB_USE_CAS
    hash_power: int = HASH_POWER


@dataclass
class SlabMetrics:
    slab_req: int = 0
    slab_req_ex: int = 0
    slab_evict: int = 0
    slab_memory: int = 0
    slab_curr: int = 0
    item_keyval_byte: int = 0
    item_val_byte: int = 0
    item_curr: int = 0
    item_req: int = 0
    item_req_ex: int = 0
    item_insert: int = 0
    item_remove: int = 0


class SlabSetupError(Exception):
    """Raised when the slab configuration is unusable."""


@dataclass(eq=False)
class Slab:
    """A slab: its position in the slab table and the items carved from it."""

    index: int
    id: int = 0
    utime: int = 0
    items: list[Item] = field(default_factory=list, repr=False)


class SlabAllocator:
    """Hands out items from slabs, reclaiming whole slabs when memory runs out.

    Also owns the hash table that indexes linked items, since evicting a slab
    must unlink its items from it.
    """

    def __init__(
        self,
        options: SlabOptions | None = None,
        metrics: SlabMetrics | None = None,
    ) -> None:
        log.info("set up the storage::slab module")
        options = options if options is not None else SlabOptions()
        self.metrics = metrics if metrics is not None else SlabMetrics()

        self.slab_size = options.slab_size
        self.slab_mem = options.slab_mem
        self.prealloc = options.prealloc
        self.evict_opt = EvictPolicy(options.evict_opt)
        self.use_freeq = options.use_freeq
        self.item_min = options.item_min
        self.item_max = options.item_max
        self.item_growth = options.item_growth
        self.use_cas = options.use_cas
        self.cas_id = 0
        self._rng = random.Random()

        try:
            self.hash_table = HashTable(options.hash_power)
        except ValueError as exc:
            raise SlabSetupError("could not create hash table") from exc

        if self.slab_size <= 0:
            raise SlabSetupError("slab size must be positive")
        self.max_nslab = self.slab_mem // self.slab_size
        self._slab_table: list[Slab] = []
        self._lruq: dict[int, Slab] = {}

        try:
            if options.profile is not None:
                sizes = parse_profile(options.profile)
            else:
                sizes = generate_profile(
                    self.slab_size, self.item_min, self.item_max, self.item_growth
                )
        except ProfileError as exc:
            raise SlabSetupError(f"could not setup slab profile: {exc}") from exc
        self.sizes = sizes

        capacity = self.capacity
        self.slabclasses: dict[int, SlabClass] = {}
        for cid, size in enumerate(sizes, start=1):
            nitem = capacity // size
            if nitem <= 0:
                raise SlabSetupError(
                    f"invalid slab class size {size}; too large to fit in slab"
                )
            self.slabclasses[cid] = SlabClass(id=cid, size=size, nitem=nitem)

    @property
    def capacity(self) -> int:
        """Bytes of each slab available for item chunks."""
        return self.slab_size - SLAB_HDR_SIZE

    @property
    def nslab(self) -> int:
        return len(self._slab_table)

    def describe(self) -> str:
        """Summarise slab geometry and every slab class, one line each."""
        lines = [
            f"slab size {self.slab_size}, slab hdr size {SLAB_HDR_SIZE}, "
            f"item hdr size {ITEM_HDR_SIZE}, item chunk size {self.item_min}, "
            f"total memory {self.slab_mem}"
        ]
        for cid, p in self.slabclasses.items():
            lines.append(
                f"class {cid:3d}: items {p.nitem:7d}  size {p.size:7d}  "
                f"data {p.size - ITEM_HDR_SIZE:7d}  "
                f"slack {self.capacity - p.nitem * p.size:7d}"
            )
        text = "\n".join(lines)
        for line in lines:
            log.info("%s", line)
        return text

    def slab_id(self, size: int) -> int:
        """Id of the smallest class holding ``size`` bytes, or the invalid id."""
        return find_slab_id(self.sizes, size)

    def item_slabid(self, klen: int, vlen: int) -> int:
        """Id of the class that fits an item with these key/value lengths."""
        return self.slab_id(item_ntotal(klen, vlen, self.use_cas))

    def set_cas(self, item: Item) -> None:
        """Give ``item`` the next cas value when cas is enabled."""
        if self.use_cas:
            self.cas_id += 1
            item.cas = self.cas_id

    def _make_item(self, slab: Slab, idx: int, size: int) -> Item:
        it = Item(offset=SLAB_HDR_SIZE + idx * size, id=slab.id, slab=slab)
        slab.items.append(it)
        return it

    def _get_new(self) -> Slab | None:
        if len(self._slab_table) >= self.max_nslab:
            return None
        slab = Slab(index=len(self._slab_table))
        self._slab_table.append(slab)
        log.debug("new slab allocated at pos %d", slab.index)
        self.metrics.slab_curr += 1
        self.metrics.slab_memory += self.slab_size
        return slab

    def _evict_one(self, slab: Slab) -> None:
        p = self.slabclasses[slab.id]
        if p.next_item is not None and p.next_item.slab is slab:
            p.nfree_item = 0
            p.next_item = None

        for it in slab.items:
            if it.is_linked:
                it.is_linked = False
                self.hash_table.delete(it.key)
            elif it.in_freeq:
                it.in_freeq = False
                p.free_items.remove(it)

        self._lruq.pop(slab.index, None)
        self.metrics.slab_evict += 1

    def _evict_lru(self) -> Slab | None:
        if not self._lruq:
            return None
        slab = next(iter(self._lruq.values()))
        log.debug("lru-evicting slab %d with id %d", slab.index, slab.id)
        self._evict_one(slab)
        return slab

    def _evict_rand(self) -> Slab | None:
        if not self._slab_table:
            return None
        slab = self._slab_table[self._rng.randrange(len(self._slab_table))]
        log.debug("random-evicting slab %d with id %d", slab.index, slab.id)
        self._evict_one(slab)
        return slab

    def _init_slab(self, slab: Slab, cid: int) -> None:
        p = self.slabclasses[cid]
        slab.id = cid
        slab.items = []
        self._lruq[slab.index] = slab
        p.nfree_item = p.nitem
        p.next_item = self._make_item(slab, 0, p.size)

    def _get_slab(self, cid: int) -> None:
        slab = self._get_new()
        if slab is None and self.evict_opt & EvictPolicy.CS:
            slab = self._evict_lru()
        if slab is None and self.evict_opt & EvictPolicy.RS:
            slab = self._evict_rand()

        self.metrics.slab_req += 1
        if slab is None:
            self.metrics.slab_req_ex += 1
            raise ItemNoMemoryError(f"no slab available for class {cid}")
        self._init_slab(slab, cid)

    def _get_item_from_freeq(self, cid: int) -> Item | None:
        if not self.use_freeq:
            return None
        p = self.slabclasses[cid]
        if not p.free_items:
            return None
        it = p.free_items.pop(0)
        it.in_freeq = False
        log.debug("get free q item at offset %d with id %d", it.offset, it.id)
        return it

    def get_item(self, id: int) -> Item:
        """Hand out an item of class ``id``, from the free queue or a slab.

        Raises :class:`ItemNoMemoryError` when no slab can be obtained.
        """
        if id not in self.slabclasses:
            raise ValueError(f"invalid slab class id {id}")
        it = self._get_item_from_freeq(id)
        if it is not None:
            return it

        p = self.slabclasses[id]
        if p.next_item is None:
            self._get_slab(id)

        it = p.next_item
        p.nfree_item -= 1
        if p.nfree_item:
            p.next_item = self._make_item(it.slab, len(it.slab.items), p.size)
        else:
            p.next_item = None
        log.debug("get new item at offset %d with id %d", it.offset, it.id)
        return it

    def put_item(self, item: Item) -> None:
        """Return an unlinked item to the free queue of its class."""
        if item.id not in self.slabclasses:
            raise ValueError(f"invalid slab class id {item.id}")
        if item.slab is None or item.slab.id != item.id:
            raise ValueError("item does not belong to a slab of its class")
        if item.is_linked:
            raise ValueError("item is still linked")
        if item.in_freeq:
            raise ValueError("item is already in the free queue")
        item.in_freeq = True
        self.slabclasses[item.id].free_items.insert(0, item)