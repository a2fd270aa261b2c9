# core/lru_cache.py
import json
import threading
from collections import OrderedDict
from typing import Any, Dict, Generic, Hashable, List, Mapping, Optional, TypeVar
from config.settings import settings
from util.functions import normalize_text

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class LRUCache(Generic[K, V]):
    """
    Bounded least-recently-used cache.

    Both `get` (on hit) and `set` count as access. A lock makes the
    lookup-then-promote sequence atomic when handlers run on the threadpool.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self._capacity = capacity
        self._data: "OrderedDict[K, V]" = OrderedDict()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def get(self, key: K) -> Optional[V]:
        with self._lock:
            if key not in self._data:
                return None
            self._data.move_to_end(key)
            return self._data[key]

    def set(self, key: K, value: V) -> None:
        with self._lock:
            if key in self._data:
                del self._data[key]
            elif len(self._data) >= self._capacity:
                self._data.popitem(last=False)
            self._data[key] = value

    def clear(self) -> None:
        with self._lock:
            self._data.clear()

    def keys(self) -> List[K]:
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._data.keys())

    def __contains__(self, key: object) -> bool:
        # Membership check only; does not touch recency.
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


class CacheService:
    """The two caches the retrieval path uses, owned by one process-wide instance."""

    def __init__(
        self,
        embedding_capacity: int = settings.EMBEDDING_CACHE_SIZE,
        result_capacity: int = settings.RESULT_CACHE_SIZE,
    ) -> None:
        self.embeddings: LRUCache[str, List[float]] = LRUCache(embedding_capacity)
        self.results: LRUCache[str, Any] = LRUCache(result_capacity)

    def clear(self) -> None:
        self.embeddings.clear()
        self.results.clear()

    def stats(self) -> Dict[str, int]:
        return {
            "embeddings": len(self.embeddings),
            "embeddingsCapacity": self.embeddings.capacity,
            "results": len(self.results),
            "resultsCapacity": self.results.capacity,
        }


def generate_cache_key(text: str, options: Optional[Mapping[str, Any]] = None) -> str:
    """
    `<normalized text>:<canonical options json>`. Keys are sorted and unset
    (None) options dropped, so equal option sets always map to the same key.
    """
    opts = {k: v for k, v in (options or {}).items() if v is not None}
    canonical = json.dumps(opts, sort_keys=True, separators=(",", ":"), default=str)
    return f"{normalize_text(text)}:{canonical}"
