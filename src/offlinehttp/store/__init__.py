"""Persistent key-value stores for offlinehttp.

The request cache talks to storage only through the asynchronous
:class:`KeyValueStore` interface. Two implementations ship with the package:

* :class:`DiskStore` -- durable, backed by :mod:`diskcache`.
* :class:`MemoryStore` -- process-local, backed by a dict.
"""

from offlinehttp.store.base import KeyValueStore, StoreVisitor
from offlinehttp.store.disk import DiskStore
from offlinehttp.store.memory import MemoryStore

__all__ = ["KeyValueStore", "StoreVisitor", "DiskStore", "MemoryStore"]
