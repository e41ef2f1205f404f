"""In-memory key-value cache storage engines, clock and process helpers."""

__version__ = "0.1.0"