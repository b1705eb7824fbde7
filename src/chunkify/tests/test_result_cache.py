"""
--------------------------------------------------------------------------------
<chunkify project>
src/chunkify/tests/test_result_cache.py

Module Author(s): Eric J. South
--------------------------------------------------------------------------------
"""

from __future__ import annotations

import threading
import time

import pytest

from chunkify.src.errors import ConfigError
from chunkify.src.result_cache import ResultCache


class _CountingLoader:
    def __init__(self, delay: float = 0.0):
        self.calls: list = []
        self.delay = delay
        self._lock = threading.Lock()

    def __call__(self, key):
        with self._lock:
            self.calls.append(key)
        if self.delay:
            time.sleep(self.delay)
        return f"doc-{key}"


def test_lru_eviction_order() -> None:
    cache: ResultCache[str, str] = ResultCache(2)
    load = _CountingLoader()
    for key in ["A", "B", "A", "C"]:
        assert cache.get_or_load(key, load) == f"doc-{key}"
    assert "B" not in cache
    assert cache.keys() == ["A", "C"]
    assert load.calls == ["A", "B", "C"]
    assert cache.evictions == 1
    # B was evicted, so it is loaded again; A is now least recently used
    cache.get_or_load("B", load)
    assert load.calls == ["A", "B", "C", "B"]
    assert cache.keys() == ["C", "B"]


def test_unbounded_never_evicts() -> None:
    cache = ResultCache(0)
    load = _CountingLoader()
    for key in range(50):
        cache.get_or_load(key, load)
    for key in range(50):
        cache.get_or_load(key, load)
    assert len(cache) == 50
    assert len(load.calls) == 50
    assert cache.stats()["hits"] == 50


def test_single_flight_under_concurrency() -> None:
    cache = ResultCache(4)
    load = _CountingLoader(delay=0.2)
    results = []
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        results.append(cache.get_or_load("shard0", load))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert load.calls == ["shard0"]
    assert results == ["doc-shard0"] * 8
    assert cache.loads == 1


def test_failed_load_propagates_and_is_not_cached() -> None:
    cache = ResultCache(2)

    def broken(key):
        raise OSError("disk gone")

    with pytest.raises(OSError):
        cache.get_or_load("x", broken)
    assert "x" not in cache
    assert cache.get_or_load("x", lambda k: "ok") == "ok"


def test_negative_capacity_rejected() -> None:
    with pytest.raises(ConfigError):
        ResultCache(-1)
