[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kvcache"
version = "0.1.0"
description = "In-memory key-value cache storage engines: a cuckoo hash store and a slab allocator with item store"
requires-python = ">=3.10"
dependencies = []
keywords = ["cache", "key-value", "cuckoo-hashing", "slab-allocator", "memcache"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database :: Database Engines/Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["kvcache"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
