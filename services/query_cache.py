from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Hashable, Sequence, Tuple


QueryKey = Tuple[Hashable, ...]


def _as_key(key: Sequence[Hashable]) -> QueryKey:
    return tuple(key)


class QueryCache:
    """Cached reads keyed by tuples such as ``("queue", user_id)``.

    ``invalidate`` drops every entry whose key starts with the given prefix,
    so ``("queue",)`` clears the queue listing of every user.
    """

    def __init__(self) -> None:
        self._entries: Dict[QueryKey, Any] = {}
        self._lock = threading.Lock()

    def fetch(self, key: Sequence[Hashable], loader: Callable[[], Any]) -> Any:
        qk = _as_key(key)
        with self._lock:
            if qk in self._entries:
                return self._entries[qk]
        value = loader()
        with self._lock:
            self._entries[qk] = value
        return value

    def invalidate(self, prefix: Sequence[Hashable]) -> int:
        pk = _as_key(prefix)
        with self._lock:
            stale = [k for k in self._entries if k[: len(pk)] == pk]
            for k in stale:
                del self._entries[k]
        return len(stale)

    def __contains__(self, key: Sequence[Hashable]) -> bool:
        with self._lock:
            return _as_key(key) in self._entries


__all__ = ["QueryCache", "QueryKey"]
