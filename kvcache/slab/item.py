"""Items carved out of slabs: header fields, key, value and cas."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from kvcache.slab.profile import ITEM_HDR_SIZE

#: Bytes taken by the cas value when cas is enabled.
ITEM_CAS_SIZE = 8

_UINT64_MAX = (1 << 64) - 1
_UINT64_DIGITS = 20


class ItemError(Exception):
    """Base class for item storage failures."""


class ItemOversizedError(ItemError):
    """The item does not fit in any slab class."""


class ItemNoMemoryError(ItemError):
    """No item could be allocated for the slab class."""


class ItemNotANumberError(ItemError):
    """The item value is not an unsigned 64-bit decimal number."""


def item_ntotal(klen: int, vlen: int, use_cas: bool) -> int:
    """Bytes an item with the given key and value lengths occupies."""
    return ITEM_HDR_SIZE + (ITEM_CAS_SIZE if use_cas else 0) + klen + vlen


@dataclass(eq=False)
class Item:
    """One chunk of a slab.

    ``offset`` is the chunk's position inside its slab and ``id`` the slab
    class it belongs to.  An item is linked into the hash table, sits in its
    class's free queue, or neither.  ``is_raligned`` records that the value
    was last laid out against the end of the chunk (after a prepend).
    """

    offset: int = 0
    id: int = 0
    key: bytes = b""
    value: bytes = b""
    dataflag: int = 0
    expire_at: int = 0
    create_at: int = 0
    cas: int = 0
    is_linked: bool = False
    in_freeq: bool = False
    is_raligned: bool = False
    slab: Any = field(default=None, repr=False)

    @property
    def klen(self) -> int:
        return len(self.key)

    @property
    def vlen(self) -> int:
        return len(self.value)

    def reset(self) -> None:
        """Clear flags, key, value and times before the item is reused."""
        self.is_linked = False
        self.in_freeq = False
        self.is_raligned = False
        self.value = b""
        self.dataflag = 0
        self.key = b""
        self.expire_at = 0
        self.create_at = 0

    def ntotal(self, use_cas: bool) -> int:
        """Bytes this item occupies with its current key and value."""
        return item_ntotal(self.klen, self.vlen, use_cas)

    def as_int(self) -> int:
        """Parse the value as an unsigned 64-bit decimal integer."""
        v = self.value
        if not v or len(v) > _UINT64_DIGITS or not v.isdigit():
            raise ItemNotANumberError(f"value {v!r} is not a number")
        n = int(v)
        if n > _UINT64_MAX:
            raise ItemNotANumberError(f"value {v!r} exceeds 64 bits")
        return n