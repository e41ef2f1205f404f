"""Fixed-size cuckoo hash table storage and its items."""