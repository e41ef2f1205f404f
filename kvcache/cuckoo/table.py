"""Cuckoo hash table whose slots are the data store itself."""

from __future__ import annotations

import dataclasses
import enum
import logging
import random
import struct
from dataclasses import dataclass

from kvcache.clock import Clock
from kvcache.cuckoo.item import CAS_SIZE, ITEM_HDR_SIZE, Item, Val

log = logging.getLogger(__name__)

CUCKOO_DISPLACE = 2
CUCKOO_ITEM_CAS = True
CUCKOO_ITEM_SIZE = 64
CUCKOO_NITEM = 1024

_M32 = 0xFFFFFFFF

#: One seed per hash function; D = len(_IV) candidate slots per key.
_IV = (0x3AC5D673, 0x6D7839D0, 0x2B581CF5, 0x4DD2BE0A)


def _rot(x: int, k: int) -> int:
    return ((x << k) | (x >> (32 - k))) & _M32


def _mix(a: int, b: int, c: int) -> tuple[int, int, int]:
    a = (a - c) & _M32; a ^= _rot(c, 4); c = (c + b) & _M32
    b = (b - a) & _M32; b ^= _rot(a, 6); a = (a + c) & _M32
    c = (c - b) & _M32; c ^= _rot(b, 8); b = (b + a) & _M32
    a = (a - c) & _M32; a ^= _rot(c, 16); c = (c + b) & _M32
    b = (b - a) & _M32; b ^= _rot(a, 19); a = (a + c) & _M32
    c = (c - b) & _M32; c ^= _rot(b, 4); b = (b + a) & _M32
    return a, b, c


def _final(a: int, b: int, c: int) -> int:
    c ^= b; c = (c - _rot(b, 14)) & _M32
    a ^= c; a = (a - _rot(c, 11)) & _M32
    b ^= a; b = (b - _rot(a, 25)) & _M32
    c ^= b; c = (c - _rot(b, 16)) & _M32
    a ^= c; a = (a - _rot(c, 4)) & _M32
    b ^= a; b = (b - _rot(a, 14)) & _M32
    c ^= b; c = (c - _rot(b, 24)) & _M32
    return c


def hashlittle(data: bytes, initval: int = 0) -> int:
    """Bob Jenkins' lookup3 ``hashlittle`` over ``data`` with seed ``initval``."""
    data = bytes(data)
    length = len(data)
    a = b = c = (0xDEADBEEF + length + initval) & _M32
    if length == 0:
        return c
    pos = 0
    while length - pos > 12:
        k0, k1, k2 = struct.unpack_from("<3I", data, pos)
        a = (a + k0) & _M32
        b = (b + k1) & _M32
        c = (c + k2) & _M32
        a, b, c = _mix(a, b, c)
        pos += 12
    k0, k1, k2 = struct.unpack("<3I", data[pos:].ljust(12, b"\0"))
    a = (a + k0) & _M32
    b = (b + k1) & _M32
    c = (c + k2) & _M32
    return _final(a, b, c)


class Policy(enum.IntEnum):
    """How a victim slot is chosen when all candidates are taken."""

    RANDOM = 1
    EXPIRE = 2


@dataclass
class CuckooOptions:
    displace: int = CUCKOO_DISPLACE
    item_cas: bool = CUCKOO_ITEM_CAS
    item_size: int = CUCKOO_ITEM_SIZE
    nitem: int = CUCKOO_NITEM
    policy: Policy = Policy.RANDOM


@dataclass
class CuckooMetrics:
    cuckoo_get: int = 0
    cuckoo_insert: int = 0
    cuckoo_insert_ex: int = 0
    cuckoo_displace: int = 0
    cuckoo_update: int = 0
    cuckoo_update_ex: int = 0
    cuckoo_delete: int = 0
    item_val_curr: int = 0
    item_key_curr: int = 0
    item_data_curr: int = 0
    item_curr: int = 0
    item_displace: int = 0
    item_evict: int = 0
    item_expire: int = 0
    item_insert: int = 0
    item_delete: int = 0


class CuckooError(Exception):
    """Raised when a key and value do not fit in one item."""


class Cuckoo:
    """A fixed-capacity cuckoo hash table of equally sized items."""

    def __init__(
        self,
        options: CuckooOptions | None = None,
        metrics: CuckooMetrics | None = None,
        clock: Clock | None = None,
    ) -> None:
        log.info("set up the storage::cuckoo module")
        options = options if options is not None else CuckooOptions()
        self.metrics = metrics if metrics is not None else CuckooMetrics()
        self.clock = clock if clock is not None else Clock()
        self.item_size = options.item_size
        self.nitem = options.nitem
        self.policy = Policy(options.policy)
        self.cas_enabled = bool(options.item_cas)
        self.max_displace = options.displace
        self._cas_val = 0
        self._rng = random.Random()
        self._items = [Item() for _ in range(self.nitem)]

    @property
    def item_overhead(self) -> int:
        return ITEM_HDR_SIZE + (CAS_SIZE if self.cas_enabled else 0)

    def _now(self) -> int:
        return self.clock.now

    def _next_cas(self) -> int | None:
        if not self.cas_enabled:
            return None
        self._cas_val += 1
        return self._cas_val

    def _hash(self, key: bytes) -> list[int]:
        return [hashlittle(key, iv) % self.nitem for iv in _IV]

    def _metrics_incr(self, it: Item) -> None:
        m = self.metrics
        m.item_curr += 1
        m.item_key_curr += len(it.key)
        m.item_val_curr += it.vlen()
        m.item_data_curr += it.datalen()

    def _metrics_decr(self, it: Item) -> None:
        m = self.metrics
        m.item_curr -= 1
        m.item_key_curr -= len(it.key)
        m.item_val_curr -= it.vlen()
        m.item_data_curr -= it.datalen()

    def _select_candidate(self, offsets: list[int]) -> int:
        if self.policy is Policy.RANDOM:
            selected = self._rng.choice(offsets)
        else:
            selected = min(offsets, key=lambda o: self._items[o].expire)
        log.debug("selected offset: %d", selected)
        return selected

    def _sort_candidates(self, offsets: list[int]) -> list[int]:
        if self.policy is Policy.RANDOM:
            j = self._rng.randrange(len(offsets))
            return offsets[j:] + offsets[:j]
        return sorted(offsets, key=lambda o: self._items[o].expire)

    def _displace(self, displaced: int) -> None:
        m = self.metrics
        m.cuckoo_displace += 1
        now = self._now()
        path = [displaced]
        evict = True
        ended = False
        step = 0
        while not ended and step < self.max_displace:
            step += 1
            offsets = self._hash(self._items[displaced].key)
            for off in offsets:
                cand = self._items[off]
                if cand.valid(now):
                    continue
                ended = True
                evict = False
                path.append(off)
                m.item_displace += 1
                if cand.expired(now):
                    m.item_expire += 1
                    self._metrics_decr(cand)
                break
            else:
                # candidates are tried in policy order; the first is taken
                m.item_displace += 1
                displaced = self._sort_candidates(offsets)[0]
                path.append(displaced)

        if evict:
            log.debug("one item evicted during replacement")
            m.item_evict += 1
            self._metrics_decr(self._items[path[step]])

        for i in range(step, 0, -1):
            self._items[path[i]] = dataclasses.replace(self._items[path[i - 1]])
        self._items[path[0]].expire = 0

    def reset(self) -> None:
        """Empty every slot."""
        log.info("reset the main hash table in cuckoo")
        self._items = [Item() for _ in range(self.nitem)]

    def get(self, key: bytes) -> Item | None:
        """Return the live item for ``key``, or ``None``."""
        self.metrics.cuckoo_get += 1
        now = self._now()
        for off in self._hash(key):
            it = self._items[off]
            if it.valid(now) and it.matches(key):
                return it
        return None

    def insert(self, key: bytes, val: Val, expire: int) -> Item:
        """Store a key that is not validly present; returns the written item."""
        m = self.metrics
        m.cuckoo_insert += 1
        if len(key) + val.length + self.item_overhead > self.item_size:
            log.warning(
                "key value exceed chunk size %d: key len %d, vlen %d, "
                "item overhead %d",
                self.item_size, len(key), val.length, self.item_overhead,
            )
            m.cuckoo_insert_ex += 1
            raise CuckooError("key and value exceed item size")

        now = self._now()
        offsets = self._hash(key)
        for off in offsets:
            it = self._items[off]
            if it.valid(now):
                continue
            if it.expired(now):
                m.item_expire += 1
                self._metrics_decr(it)
            break
        else:
            off = self._select_candidate(offsets)
            self._displace(off)
            it = self._items[off]

        it.set(key, val, expire, self._next_cas())
        m.item_insert += 1
        self._metrics_incr(it)
        return it

    def update(self, item: Item, val: Val, expire: int) -> None:
        """Replace the value of an existing item in place."""
        m = self.metrics
        m.cuckoo_update += 1
        if len(item.key) + val.length + self.item_overhead > self.item_size:
            log.warning("key value exceed chunk size")
            m.cuckoo_update_ex += 1
            raise CuckooError("key and value exceed item size")

        m.item_val_curr -= item.vlen()
        m.item_data_curr -= item.vlen()
        item.update(val, expire, self._next_cas())
        m.item_val_curr += item.vlen()
        m.item_data_curr += item.vlen()

    def delete(self, key: bytes) -> bool:
        """Delete ``key``; returns whether it was present."""
        m = self.metrics
        m.cuckoo_delete += 1
        it = self.get(key)
        if it is None:
            log.debug("item not found")
            return False
        m.item_delete += 1
        self._metrics_decr(it)
        it.delete()
        return True