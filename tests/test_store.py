import pytest

from kvcache.clock import Clock
from kvcache.slab.item import ItemNoMemoryError, ItemOversizedError
from kvcache.slab.slab import EvictPolicy, SlabMetrics, SlabOptions
from kvcache.slab.store import ItemStore

KiB = 1024
DATAFLAG = 12345


@pytest.fixture
def store():
    clock = Clock()
    clock.update()
    return ItemStore(SlabOptions(), SlabMetrics(), clock)


def _small_store(evict):
    options = SlabOptions(
        slab_size=160, slab_mem=160, evict_opt=evict, item_max=160 - 32
    )
    clock = Clock()
    clock.update()
    return ItemStore(options, SlabMetrics(), clock)


def test_insert_basic(store):
    store.insert(b"key", b"val", DATAFLAG, 0)
    it = store.get(b"key")
    assert it is not None
    assert it.is_linked
    assert not it.in_freeq
    assert not it.is_raligned
    assert it.vlen == 3
    assert it.klen == 3
    assert it.dataflag == DATAFLAG
    assert it.value == b"val"
    assert store.metrics.item_curr == 1
    assert store.metrics.item_keyval_byte == 6


def test_insert_large(store):
    data = b"A" * (1000 * KiB - 1) + b"\0"
    store.insert(b"key", data, DATAFLAG, 0)
    it = store.get(b"key")
    assert it is not None
    assert it.is_linked
    assert not it.in_freeq
    assert not it.is_raligned
    assert it.vlen == 1000 * KiB
    assert it.klen == 3
    assert it.dataflag == DATAFLAG
    assert it.value.rstrip(b"\0") == b"A" * (1000 * KiB - 1)


def test_append_basic(store):
    store.insert(b"key", b"val", DATAFLAG, 0)
    it = store.get(b"key")
    store.annex(it, b"append", True)
    it = store.get(b"key")
    assert it is not None
    assert it.is_linked
    assert not it.in_freeq
    assert not it.is_raligned
    assert it.vlen == len(b"valappend")
    assert it.klen == 3
    assert it.dataflag == DATAFLAG
    assert it.value == b"valappend"


def test_prepend_basic(store):
    store.insert(b"key", b"val", DATAFLAG, 0)
    it = store.get(b"key")
    store.annex(it, b"prepend", False)
    it = store.get(b"key")
    assert it is not None
    assert it.is_linked
    assert not it.in_freeq
    assert it.is_raligned
    assert it.vlen == len(b"prependval")
    assert it.dataflag == DATAFLAG
    assert it.value == b"prependval"


def test_annex_sequence(store):
    store.insert(b"key", b"val", DATAFLAG, 0)
    it = store.get(b"key")

    store.annex(it, b"append1", True)
    it = store.get(b"key")
    assert it.is_linked and not it.in_freeq and not it.is_raligned
    assert it.value == b"valappend1"
    assert it.dataflag == DATAFLAG

    store.annex(it, b"prepend", False)
    it = store.get(b"key")
    assert it.is_linked and not it.in_freeq and it.is_raligned
    assert it.value == b"prependvalappend1"
    assert it.klen == 3

    store.annex(it, b"append2", True)
    it = store.get(b"key")
    assert it.is_linked and not it.in_freeq and not it.is_raligned
    assert it.value == b"prependvalappend1append2"
    assert it.vlen == 24
    assert it.dataflag == DATAFLAG
    assert store.metrics.item_curr == 1


def test_annex_changes_cas(store):
    first = store.insert(b"key", b"val", 0, 0)
    cas1 = first.cas
    second = store.annex(first, b"x", True)
    assert second.cas > cas1


def test_update_basic(store):
    store.insert(b"key", b"old_val", DATAFLAG, 0)
    it = store.get(b"key")
    cas1 = it.cas
    store.update(it, b"new_val")
    it = store.get(b"key")
    assert it is not None
    assert it.is_linked and not it.in_freeq and not it.is_raligned
    assert it.vlen == 7
    assert it.klen == 3
    assert it.dataflag == DATAFLAG
    assert it.value == b"new_val"
    assert it.cas != cas1


def test_delete_basic(store):
    store.insert(b"key", b"val", DATAFLAG, 0)
    assert store.get(b"key") is not None
    assert store.delete(b"key") is True
    assert store.get(b"key") is None
    assert store.delete(b"key") is False
    assert store.metrics.item_curr == 0
    assert store.metrics.item_remove == 1


def test_deleted_item_is_reused_from_freeq(store):
    first = store.insert(b"key", b"val", 0, 0)
    store.delete(b"key")
    second = store.insert(b"other", b"val", 0, 0)
    assert second is first
    assert second.key == b"other"


def test_flush_basic(store):
    store.clock.update()
    store.insert(b"key1", b"val1", 0, 0)
    store.clock.update()
    store.insert(b"key2", b"val2", 0, 0)
    store.flush()
    assert store.get(b"key1") is None
    assert store.get(b"key2") is None
    assert store.metrics.item_curr == 0


def test_expire(store):
    now = store.clock.now
    store.insert(b"key", b"val", 0, now + 1)
    assert store.get(b"key") is not None
    store.clock.now = now + 2
    assert store.get(b"key") is None


def test_evict_lru_basic():
    store = _small_store(EvictPolicy.CS)
    keys = [b"aa", b"bb", b"cc"]
    vals = [b"aaaaaaaa", b"bbbbbbbb", b"cccccccc"]
    for key, val in zip(keys, vals):
        store.clock.update()
        store.insert(key, val, 0, 0)
        assert store.get(key) is not None
    assert store.get(keys[0]) is None
    assert store.get(keys[1]) is None
    assert store.get(keys[2]).value == b"cccccccc"
    assert store.metrics.slab_evict == 1


def test_no_memory_without_eviction():
    store = _small_store(EvictPolicy.NONE)
    store.insert(b"aa", b"aaaaaaaa", 0, 0)
    store.insert(b"bb", b"bbbbbbbb", 0, 0)
    with pytest.raises(ItemNoMemoryError):
        store.insert(b"cc", b"cccccccc", 0, 0)
    assert store.metrics.item_req_ex == 1
    assert store.get(b"aa").value == b"aaaaaaaa"


def test_insert_oversized():
    store = _small_store(EvictPolicy.CS)
    with pytest.raises(ItemOversizedError):
        store.insert(b"aa", b"x" * 200, 0, 0)


def test_annex_oversized():
    store = _small_store(EvictPolicy.CS)
    it = store.insert(b"aa", b"aaaaaaaa", 0, 0)
    with pytest.raises(ItemOversizedError):
        store.annex(it, b"x" * 200, True)
    assert store.get(b"aa").value == b"aaaaaaaa"


def test_update_wrong_class(store):
    it = store.insert(b"key", b"val", 0, 0)
    with pytest.raises(ValueError):
        store.update(it, b"x" * 4000)
    assert store.get(b"key").value == b"val"


def test_insert_existing_key_raises(store):
    store.insert(b"key", b"val", 0, 0)
    with pytest.raises(KeyError):
        store.insert(b"key", b"other", 0, 0)
    assert store.get(b"key").value == b"val"
    assert store.metrics.item_curr == 1