"""
Durable key/value storage.

Identity records and unsent entry buffers are persisted through a
``KeyValueStore``. Two back-ends ship with the package:

- MemoryStore: process-local dictionary
- FileStore: one locked, atomically replaced JSON file per key
"""

from .codec import decode_json, encode_json
from .store import FileStore, KeyValueStore, MemoryStore

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "FileStore",
    "encode_json",
    "decode_json",
]
