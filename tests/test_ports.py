"""Tests for the form server port pool."""
import pytest

from agent_secrets.errors import PortExhaustedError
from agent_secrets.forms.ports import PortPool


class TestPortPool:
    """Tests for PortPool."""

    def test_lowest_free_port(self):
        pool = PortPool(20000, 3, probe=lambda host, port: True)
        assert pool.acquire() == 20000
        assert pool.acquire() == 20001
        assert pool.leased == {20000, 20001}

    def test_skips_bound_ports(self):
        pool = PortPool(20000, 3, probe=lambda host, port: port != 20000)
        assert pool.acquire() == 20001

    def test_exhaustion(self):
        pool = PortPool(20000, 2, probe=lambda host, port: True)
        pool.acquire()
        pool.acquire()
        with pytest.raises(PortExhaustedError):
            pool.acquire()

    def test_release_recycles(self):
        pool = PortPool(20000, 1, probe=lambda host, port: True)
        port = pool.acquire()
        pool.release(port)
        assert pool.acquire() == port

    def test_release_unknown_is_noop(self):
        pool = PortPool(20000, 1, probe=lambda host, port: True)
        pool.release(12345)
        assert len(pool) == 0

    def test_size_must_be_positive(self):
        with pytest.raises(ValueError):
            PortPool(20000, 0)
