# kvcache

In-memory storage engines for a key-value cache.

## Modules

- `kvcache.clock`: `Clock`, a cached clock with second granularity that
  counts from the process start, set back two seconds so uptime is never zero.
  `Clock.update()` refreshes `Clock.now`. `Clock.reltime(t)` turns a client
  expiry into relative time. 0 means never expire. Values up to 30 days are
  offsets from now. Larger values are absolute unix timestamps.
- `kvcache.cuckoo.item`: `Val` (an unsigned 64-bit int or bytes), `ValType`
  and `Item`, one fixed-size slot of the cuckoo table.
- `kvcache.cuckoo.table`: `Cuckoo`, a fixed-capacity cuckoo hash table. Each
  key has four candidate slots, chosen by `hashlittle` with four seeds. When
  all four slots are taken, the table displaces an item. It picks the victim
  by `Policy.RANDOM` or by `Policy.EXPIRE`, which takes the soonest to expire.
  The table is configured through `CuckooOptions` and counts activity in
  `CuckooMetrics`. A key and value that do not fit one item raise
  `CuckooError`.
- `kvcache.slab.profile`: the slab class chunk sizes. `generate_profile`
  derives them from the slab size, the chunk bounds and the growth factor.
  `parse_profile` reads them from a whitespace-separated list. `find_slab_id`
  returns the class for a given size. Bad configurations raise `ProfileError`.
- `kvcache.slab.hashtable`: `HashTable`, a chained hash table of
  `2 ** hash_power` buckets.
- `kvcache.slab.item`: the slab `Item`, `item_ntotal`, and the errors
  `ItemError`, `ItemOversizedError`, `ItemNoMemoryError` and
  `ItemNotANumberError`.
- `kvcache.slab.slab`: `SlabAllocator`. It hands out items from fixed-size
  slabs and reuses freed items through per-class free queues. When memory runs
  out, it reclaims a whole slab as `EvictPolicy` says: `RS` takes a random
  slab, `CS` takes the least recently created one. The allocator is
  configured through `SlabOptions` and counts activity in `SlabMetrics`.
  `describe()` summarises the slab classes. An unusable configuration raises
  `SlabSetupError`.
- `kvcache.slab.store`: `ItemStore`, which offers `get`, `insert`, `annex`
  (append or prepend), in-place `update`, `delete` and `flush`. Expired and
  flushed items are removed lazily, the next time they are looked up.
- `kvcache.procinfo`: `ProcInfo` fills a `ProcInfoMetrics` record with the
  pid, time, uptime, version number (`version_number`) and resource usage.
- `kvcache.util`: process helpers. These are `daemonize`, `show_version`,
  `getaddr`, `create_pidfile` and `remove_pidfile`.

## Installation

```
pip install .
```

For tests:

```
pip install ".[test]"
pytest
```

## Example: cuckoo store

```python
from kvcache.clock import Clock
from kvcache.cuckoo.item import Val
from kvcache.cuckoo.table import Cuckoo, CuckooMetrics, CuckooOptions, Policy

clock = Clock()
table = Cuckoo(CuckooOptions(policy=Policy.EXPIRE), CuckooMetrics(), clock)

table.insert(b"key", Val(b"value"), 2**32 - 2)
item = table.get(b"key")
print(item.val().value)  # b"value"
table.delete(b"key")     # True
```

## Example: slab store

```python
from kvcache.clock import Clock
from kvcache.slab.slab import SlabMetrics, SlabOptions
from kvcache.slab.store import ItemStore

clock = Clock()
store = ItemStore(SlabOptions(), SlabMetrics(), clock)

store.insert(b"key", b"val", 12345, 0)
item = store.get(b"key")
store.annex(item, b"append", True)
print(store.get(b"key").value)   # b"valappend"
store.flush()
print(store.get(b"key"))         # None
```

A value too large for any slab class raises `ItemOversizedError`. When no
slab can be obtained and eviction is off, `ItemNoMemoryError` is raised.

## What this package does not do

This package holds only the storage engines and process helpers. It has no
network server, no protocol parser or composer for client requests and
responses, and no command-line program. To serve clients, you must build
those layers on top of `Cuckoo` or `ItemStore`.