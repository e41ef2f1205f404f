"""Slab allocator, slab profiles, hash table, items and item store."""