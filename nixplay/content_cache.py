from __future__ import annotations

import threading
from collections import OrderedDict

from nixplay.types import ID


class ContentCache:
    """Least recently used cache of downloaded photo bytes, keyed by photo ID."""

    DEFAULT_MAX_BYTES = 250 * 1024 * 1024  # 250 MB

    def __init__(self, max_bytes=DEFAULT_MAX_BYTES):
        self.max_bytes = max_bytes
        self._data: OrderedDict[ID, bytes] = OrderedDict()  # LRU order
        self._size = 0
        self._lock = threading.Lock()

    def get(self, photo_id: ID) -> bytes | None:
        with self._lock:
            if photo_id in self._data:
                self._data.move_to_end(photo_id)
                return self._data[photo_id]
            return None

    def put(self, photo_id: ID, data: bytes):
        size = len(data)
        if size > self.max_bytes:
            return  # single photo too large to cache
        with self._lock:
            if photo_id in self._data:
                self._size -= len(self._data.pop(photo_id))
            while self._size + size > self.max_bytes and self._data:
                _, evicted = self._data.popitem(last=False)  # evict LRU
                self._size -= len(evicted)
            self._data[photo_id] = data
            self._size += size

    def discard(self, photo_id: ID):
        with self._lock:
            if photo_id in self._data:
                self._size -= len(self._data.pop(photo_id))

    def element_deleted(self, photo, ctx=None):
        """Deletion listener hook, drops the bytes of a deleted photo."""
        self.discard(photo.id)

    @property
    def stats(self):
        with self._lock:
            return {
                "cached": len(self._data),
                "size_bytes": self._size,
                "max_bytes": self.max_bytes,
            }
