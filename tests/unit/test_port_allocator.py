"""
Unit tests for PortAllocator.
Tests: allocate, release, exhaustion, reserved ports, concurrent allocation
"""
import threading
import pytest

from worldhost.errors import NoFreePorts
from worldhost.port_allocator import PortAllocator


class TestAllocate:
    """Tests for allocate method."""

    def test_skips_reserved_port(self, allocator):
        """The reserved proxy port is never handed out."""
        assert allocator.allocate() == 25566

    def test_lowest_free_port_first(self, allocator):
        """Ports are handed out in range order."""
        ports = [allocator.allocate() for _ in range(3)]
        assert ports == [25566, 25567, 25568]

    def test_range_is_inclusive(self):
        """The end of the range can be allocated."""
        allocator = PortAllocator(30000, 30001)
        assert allocator.allocate() == 30000
        assert allocator.allocate() == 30001

    def test_exhaustion(self, allocator):
        """Should raise NoFreePorts when the range is used up."""
        for _ in range(10):
            allocator.allocate()

        with pytest.raises(NoFreePorts) as exc_info:
            allocator.allocate()
        assert "25565-25575" in str(exc_info.value)

    def test_invalid_range(self):
        with pytest.raises(ValueError):
            PortAllocator(2000, 1000)

    def test_concurrent_allocation_unique(self):
        """Concurrent callers never receive the same port."""
        allocator = PortAllocator(40000, 40199)
        results = []
        results_lock = threading.Lock()

        def worker():
            for _ in range(20):
                port = allocator.allocate()
                with results_lock:
                    results.append(port)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 200
        assert len(set(results)) == 200


class TestRelease:
    """Tests for release method."""

    def test_release_makes_port_available(self, allocator):
        """A released port is allocated again."""
        port = allocator.allocate()
        allocator.release(port)

        assert port not in allocator
        assert allocator.allocate() == port

    def test_release_is_idempotent(self, allocator):
        """Releasing twice or releasing a free port is a no-op."""
        port = allocator.allocate()
        allocator.release(port)
        allocator.release(port)
        allocator.release(30000)
        allocator.release(None)

        assert allocator.taken == frozenset()

    def test_available_count(self, allocator):
        assert allocator.available == 10
        allocator.allocate()
        assert allocator.available == 9


class TestFromConfig:
    """Tests for building from config."""

    def test_reserves_proxy_port(self):
        allocator = PortAllocator.from_config({
            'PORT_RANGE_START': 25565,
            'PORT_RANGE_END': 25567,
            'PROXY_PORT': 25565,
        })
        assert allocator.allocate() == 25566
        assert allocator.allocate() == 25567
        with pytest.raises(NoFreePorts):
            allocator.allocate()
