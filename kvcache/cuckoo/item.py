"""Fixed-size items stored in the cuckoo hash table."""

from __future__ import annotations

import enum
from dataclasses import dataclass

#: Bytes an integer value occupies in an item.
INT_VLEN = 8
#: Bytes of item header preceding the payload (expire, klen, vlen).
ITEM_HDR_SIZE = 6
#: Bytes taken by the cas value when cas is enabled.
CAS_SIZE = 8
KEY_MAXLEN = 255

_UINT64_MAX = (1 << 64) - 1


class ValType(enum.IntEnum):
    """Kind of value held by an item."""

    INT = 1
    STR = 2


@dataclass(frozen=True)
class Val:
    """A value to store: an unsigned 64-bit integer or a byte string."""

    value: int | bytes

    def __post_init__(self) -> None:
        if isinstance(self.value, bool):
            raise TypeError("value must be an int or bytes")
        if isinstance(self.value, int):
            if not 0 <= self.value <= _UINT64_MAX:
                raise ValueError("integer value must fit in 64 unsigned bits")
        elif isinstance(self.value, (bytes, bytearray, memoryview)):
            object.__setattr__(self, "value", bytes(self.value))
        else:
            raise TypeError("value must be an int or bytes")

    @property
    def type(self) -> ValType:
        return ValType.INT if isinstance(self.value, int) else ValType.STR

    @property
    def length(self) -> int:
        """Number of bytes the value takes inside an item."""
        return INT_VLEN if self.type is ValType.INT else len(self.value)


@dataclass
class Item:
    """One slot of the table.

    ``expire`` is relative time; 0 marks an empty slot.  ``cas`` is ``None``
    when the table runs without cas support.
    """

    expire: int = 0
    key: bytes = b""
    value: int | bytes = 0
    cas: int | None = None

    def valid(self, now: int) -> bool:
        """True if the item has not expired at ``now`` (read path only)."""
        return self.expire >= now

    def empty(self) -> bool:
        return self.expire == 0

    def expired(self, now: int) -> bool:
        """True if the item held data that has since expired."""
        return 0 < self.expire < now

    def matches(self, key: bytes) -> bool:
        return self.key == key

    def cas_valid(self, cas: int) -> bool:
        """Check a client cas; always succeeds when cas is disabled."""
        if self.cas is None:
            return True
        return self.cas == cas

    def vtype(self) -> ValType:
        return ValType.INT if isinstance(self.value, int) else ValType.STR

    def vlen(self) -> int:
        return INT_VLEN if self.vtype() is ValType.INT else len(self.value)

    def datalen(self) -> int:
        return len(self.key) + self.vlen()

    def val(self) -> Val:
        return Val(self.value)

    def update(self, val: Val, expire: int, cas: int | None) -> None:
        """Replace the value, expiry and cas, keeping the key."""
        self.expire = expire
        self.cas = cas
        self.value = val.value

    def set(self, key: bytes, val: Val, expire: int, cas: int | None) -> None:
        """Fill the item with a new key and value."""
        if len(key) > KEY_MAXLEN:
            raise ValueError(f"key longer than {KEY_MAXLEN} bytes")
        self.key = bytes(key)
        self.update(val, expire, cas)

    def delete(self) -> None:
        self.expire = 0