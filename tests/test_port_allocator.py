"""
Tests for host port allocation.
"""

import asyncio
import socket
from unittest.mock import patch

import pytest

from twergstack.environment.port_allocator import PortAllocator
from twergstack.errors import AllocationError, PortRangeExhausted


def occupied(*ports):
    """Availability check treating the given ports as bound."""
    busy = set(ports)
    return lambda self, port: port not in busy


class TestPortAllocator:
    """Test the occupied-run scan."""

    def test_returns_first_free_port_after_occupied_run(self):
        allocator = PortAllocator(9000)
        with patch.object(PortAllocator, "_is_port_available", occupied(9000, 9001)):
            assert asyncio.run(allocator.allocate()) == 9002

    def test_stops_at_first_free_port(self):
        """Later occupied ports do not matter once a free one is found."""
        allocator = PortAllocator(9000)
        with patch.object(PortAllocator, "_is_port_available", occupied(9000, 9002, 9003)):
            assert asyncio.run(allocator.allocate()) == 9001

    def test_free_base_port_is_exhaustion(self):
        allocator = PortAllocator(9000)
        with patch.object(PortAllocator, "_is_port_available", occupied()):
            with pytest.raises(PortRangeExhausted, match="base port 9000 is free"):
                asyncio.run(allocator.allocate())

    def test_fully_occupied_window_is_exhaustion(self):
        allocator = PortAllocator(9000, window=99)
        with patch.object(PortAllocator, "_is_port_available", occupied(*range(9000, 9099))):
            with pytest.raises(PortRangeExhausted) as exc_info:
                asyncio.run(allocator.allocate())

        assert exc_info.value.base == 9000
        assert "9000-9098" in str(exc_info.value)

    def test_port_after_window_is_not_checked(self):
        checked = []

        def check(self, port):
            checked.append(port)
            return False

        allocator = PortAllocator(9000, window=5)
        with patch.object(PortAllocator, "_is_port_available", check):
            with pytest.raises(PortRangeExhausted):
                asyncio.run(allocator.allocate())

        assert checked == [9000, 9001, 9002, 9003, 9004]

    def test_last_port_of_window_can_be_allocated(self):
        allocator = PortAllocator(9000, window=3)
        with patch.object(PortAllocator, "_is_port_available", occupied(9000, 9001)):
            assert asyncio.run(allocator.allocate()) == 9002

    def test_exhaustion_is_an_allocation_error(self):
        assert issubclass(PortRangeExhausted, AllocationError)


class TestPortProbe:
    """Test the bind check against real sockets."""

    def test_bound_port_is_not_available(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
            listener.bind(("127.0.0.1", 0))
            listener.listen(1)
            port = listener.getsockname()[1]

            allocator = PortAllocator(port)
            assert allocator._is_port_available(port) is False

    def test_allocates_next_to_real_listener(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
            listener.bind(("127.0.0.1", 0))
            listener.listen(1)
            port = listener.getsockname()[1]

            allocator = PortAllocator(port, window=1)
            with pytest.raises(PortRangeExhausted):
                asyncio.run(allocator.allocate())
