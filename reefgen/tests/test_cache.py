"""Tests for the write-once cache shared by concurrent workers."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from reefgen.codegen.cache import WriteOnceCache
from reefgen.exceptions import CycleDetected


class TestWriteOnceCache:
    """Tests for WriteOnceCache."""

    def test_computes_once(self):
        """Test that a second request reads the stored value."""
        cache = WriteOnceCache('test')
        calls = []

        def compute():
            calls.append(1)
            return 'value'

        assert cache.get_or_compute('key', compute) == 'value'
        assert cache.get_or_compute('key', compute) == 'value'
        assert len(calls) == 1
        assert cache.computations == 1

    def test_concurrent_requests_compute_once(self):
        """Test that concurrent requests for one key wait for a single computation."""
        cache = WriteOnceCache('test')
        barrier = threading.Barrier(8)
        calls = []

        def compute():
            calls.append(1)
            time.sleep(0.05)
            return object()

        def request(_):
            barrier.wait()
            return cache.get_or_compute('key', compute)

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(request, range(8)))

        assert len(calls) == 1
        assert all(result is results[0] for result in results)

    def test_failure_is_cached(self):
        """Test that a failed computation is re-raised without running again."""
        cache = WriteOnceCache('test')
        calls = []

        def compute():
            calls.append(1)
            raise ValueError('boom')

        with pytest.raises(ValueError, match='boom'):
            cache.get_or_compute('key', compute)
        with pytest.raises(ValueError, match='boom'):
            cache.get_or_compute('key', compute)
        assert len(calls) == 1

    def test_reentrant_request_is_a_cycle(self):
        """Test that a computation asking for its own key gets CycleDetected."""
        cache = WriteOnceCache('test')

        def compute():
            return cache.get_or_compute('key', compute)

        with pytest.raises(CycleDetected):
            cache.get_or_compute('key', compute)

    def test_peek(self):
        """Test that peek never computes."""
        cache = WriteOnceCache('test')

        assert cache.peek('key') is None
        cache.get_or_compute('key', lambda: 3)
        assert cache.peek('key') == 3
        assert 'key' in cache
        assert len(cache) == 1
        assert cache.keys() == ['key']
