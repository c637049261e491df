"""Tests for the registry of orders in progress."""

import asyncio
import threading

import pytest

from dedup import DedupRegistry


@pytest.fixture
def registry():
    return DedupRegistry()


class TestDedupRegistry:

    def test_admit_then_reject(self, registry):
        assert registry.try_admit("ABC123")
        assert not registry.try_admit("ABC123")
        assert "ABC123" in registry

    def test_release_allows_readmission(self, registry):
        assert registry.try_admit("ABC123")
        registry.release("ABC123")
        assert "ABC123" not in registry
        assert registry.try_admit("ABC123")

    def test_release_unknown_is_noop(self, registry):
        registry.release("NOPE")
        assert len(registry) == 0

    def test_independent_ids(self, registry):
        assert registry.try_admit("A1")
        assert registry.try_admit("B2")
        assert len(registry) == 2

    def test_concurrent_threads_single_winner(self, registry):
        barrier = threading.Barrier(16)
        results = []
        lock = threading.Lock()

        def worker():
            barrier.wait()
            admitted = registry.try_admit("ABC123")
            with lock:
                results.append(admitted)

        threads = [threading.Thread(target=worker) for _ in range(16)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 1
        assert results.count(False) == 15

    @pytest.mark.asyncio
    async def test_concurrent_coroutines_single_winner(self, registry):
        async def attempt():
            await asyncio.sleep(0)
            return registry.try_admit("ABC123")

        results = await asyncio.gather(*(attempt() for _ in range(10)))
        assert sum(results) == 1
