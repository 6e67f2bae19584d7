"""
Per host cache of fitted power models

Fitted models are kept in a bounded least recently used cache keyed by host name (or by a tuple
whose first element is the host name). invalidate() drops every entry of a
host once its calibration data changes.
"""

import threading
from collections import OrderedDict
from typing import Any, Callable, Hashable, Optional


class ModelCache:
    """A bounded, thread-safe, least recently used cache of fitted models."""

    def __init__(self, max_size: int = 50):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._entries: "OrderedDict[Hashable, Any]" = OrderedDict()
        self._lock = threading.RLock()

    def get(self, key: Hashable) -> Optional[Any]:
        """Retrieves an item and marks it as most recently used."""
        with self._lock:
            if key not in self._entries:
                return None
            self._entries.move_to_end(key)
            return self._entries[key]

    def put(self, key: Hashable, value: Any):
        """Adds an item, evicting the least recently used one when full."""
        with self._lock:
            self._entries[key] = value
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def get_or_create(self, key: Hashable, factory: Callable[[], Any]) -> Any:
        """Returns the cached item, fitting it with ``factory`` on a miss."""
        with self._lock:
            value = self.get(key)
            if value is None:
                value = factory()
                self.put(key, value)
            return value

    def invalidate(self, owner: Hashable) -> int:
        """
        Removes every entry for ``owner``

        Entries are matched on the key itself or, for tuple keys, on the
        key's first element.
        """
        with self._lock:
            stale = [
                k for k in self._entries
                if k == owner or (isinstance(k, tuple) and k and k[0] == owner)
            ]
            for key in stale:
                del self._entries[key]
            return len(stale)

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
