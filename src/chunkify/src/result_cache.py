"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/src/result_cache.py

Keyed, capacity-bounded, single-flight memoising loader.

`get_or_load(key, loader)` returns the cached value for `key` or calls
`loader(key)` exactly once, even when several threads ask for the same missing
key at the same time: the first caller loads, the others wait on its future.
Completed values are kept in least-recently-used order and the oldest is
dropped once more than `capacity` are held. Values are plain Python objects, so
a caller holding one keeps it alive after eviction; eviction only costs a
reload.

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from concurrent.futures import Future
from typing import Callable, Dict, Generic, Hashable, Optional, TypeVar

from .errors import ConfigError

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")

_LOG = logging.getLogger("chunkify.cache")


class ResultCache(Generic[K, V]):
    def __init__(self, capacity: Optional[int] = None):
        if capacity is not None and int(capacity) < 0:
            raise ConfigError("cache capacity must be >= 0 (0 = unbounded)")
        # 0 and None both mean "keep everything"
        self.capacity: Optional[int] = int(capacity) if capacity else None
        self._values: OrderedDict[K, V] = OrderedDict()
        self._inflight: Dict[K, Future] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.coalesced = 0
        self.loads = 0
        self.evictions = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._values)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._values

    def keys(self) -> list[K]:
        """Cached keys, least recently used first."""
        with self._lock:
            return list(self._values.keys())

    def clear(self) -> None:
        with self._lock:
            self._values.clear()

    def get_or_load(self, key: K, loader: Callable[[K], V]) -> V:
        with self._lock:
            if key in self._values:
                self._values.move_to_end(key)
                self.hits += 1
                return self._values[key]
            future = self._inflight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[key] = future
                self.misses += 1
            else:
                self.coalesced += 1

        if not owner:
            # re-raises the loader's exception if the owning load failed
            return future.result()

        try:
            value = loader(key)
        except BaseException as e:
            with self._lock:
                self._inflight.pop(key, None)
            future.set_exception(e)
            raise

        with self._lock:
            self.loads += 1
            self._values[key] = value
            self._values.move_to_end(key)
            self._inflight.pop(key, None)
            self._evict_locked()
        future.set_result(value)
        return value

    def _evict_locked(self) -> None:
        if self.capacity is None:
            return
        while len(self._values) > self.capacity:
            old_key, _ = self._values.popitem(last=False)
            self.evictions += 1
            _LOG.debug("Evicted %r (cache size %d)", old_key, len(self._values))

    def stats(self) -> dict:
        with self._lock:
            return {
                "capacity": self.capacity or 0,
                "size": len(self._values),
                "hits": self.hits,
                "misses": self.misses,
                "coalesced": self.coalesced,
                "loads": self.loads,
                "evictions": self.evictions,
            }
