"""Slab class profiles: the item chunk sizes each slab class serves."""

from __future__ import annotations

import bisect
import re
from dataclasses import dataclass, field
from typing import Any

#: Bytes of slab header preceding the item chunks.
SLAB_HDR_SIZE = 32
#: Bytes of item header preceding cas, key and value.
ITEM_HDR_SIZE = 40
#: Alignment of item chunk sizes.
CC_ALIGNMENT = 8

SLABCLASS_MIN_ID = 1
SLABCLASS_MAX_ID = 254
SLABCLASS_INVALID_ID = 255

_DELIMITERS = re.compile(r"[ \n\r\t]")
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


class ProfileError(ValueError):
    """Raised when a slab profile cannot be built from the configuration."""


@dataclass
class SlabClass:
    """A class of slabs whose items all share one chunk size.

    ``free_items`` holds items returned for reuse, most recent first;
    ``next_item`` and ``nfree_item`` track the unhanded items of the current
    slab.
    """

    id: int
    size: int
    nitem: int
    free_items: list[Any] = field(default_factory=list)
    nfree_item: int = 0
    next_item: Any = None

    @property
    def nfree_itemq(self) -> int:
        return len(self.free_items)


def _align(d: int, n: int) -> int:
    return (d + n - 1) & ~(n - 1)


def _align_down(d: int, n: int) -> int:
    return d - d % n


def _atol(token: str) -> int:
    m = _LEADING_INT.match(token)
    return int(m.group(1)) if m else 0


def parse_profile(text: str) -> list[int]:
    """Parse whitespace-separated chunk sizes; they must strictly increase."""
    sizes: list[int] = []
    previous = 0
    for token in _DELIMITERS.split(text):
        size = _atol(token)
        if size < 0 or size <= previous:
            raise ProfileError("invalid setup profile configuration provided")
        if len(sizes) >= SLABCLASS_MAX_ID:
            raise ProfileError("too many slab classes in profile")
        sizes.append(size)
        previous = size
    return sizes


def generate_profile(
    slab_size: int, item_min: int, item_max: int, growth: float
) -> list[int]:
    """Generate chunk sizes from slab size, chunk bounds and growth factor.

    Chunk sizes grow geometrically while the number of items per slab still
    drops by more than one each step, then the item count drops by one per
    class until a single item fills the slab.
    """
    if item_min <= ITEM_HDR_SIZE:
        raise ProfileError("invalid min chunk size - too small for item overhead")
    if item_max + SLAB_HDR_SIZE > slab_size:
        raise ProfileError("invalid max chunk size - too large to fit in one slab")
    if item_min > item_max:
        raise ProfileError("invalid min/max chunk size")
    if growth <= 1.0:
        raise ProfileError("invalid growth factor")

    capacity = slab_size - SLAB_HDR_SIZE
    too_many = ProfileError(
        "slab profile improperly configured - max chunk size too large or "
        "growth factor too small"
    )
    sizes: list[int] = []

    linear_nitem = int(1.0 / (growth - 1.0))
    nitem = capacity // _align(item_min, CC_ALIGNMENT)
    nbyte = capacity // nitem

    while nbyte <= item_max and nitem > linear_nitem:
        if len(sizes) >= SLABCLASS_MAX_ID:
            raise too_many
        if (sizes[-1] if sizes else 0) == nbyte:
            nbyte += CC_ALIGNMENT
        sizes.append(nbyte)
        nitem = int(capacity // nbyte / growth)
        if nitem == 0:
            break
        nbyte = _align_down(capacity // nitem, CC_ALIGNMENT)

    nitem = linear_nitem
    if nitem > 0:
        nbyte = _align_down(capacity // nitem, CC_ALIGNMENT)
    while nbyte <= item_max and nitem > 0:
        if len(sizes) >= SLABCLASS_MAX_ID:
            raise too_many
        sizes.append(nbyte)
        nitem -= 1
        if nitem > 0:
            nbyte = _align_down(capacity // nitem, CC_ALIGNMENT)

    return sizes


def find_slab_id(sizes: list[int], size: int) -> int:
    """Return the id of the smallest class whose chunks hold ``size`` bytes.

    ``sizes`` lists chunk sizes in increasing order, class 1 first.  Returns
    :data:`SLABCLASS_INVALID_ID` when no class is large enough.
    """
    if size <= 0:
        raise ValueError("size must be positive")
    idx = bisect.bisect_left(sizes, size)
    if idx == len(sizes):
        return SLABCLASS_INVALID_ID
    return idx + SLABCLASS_MIN_ID