"""Bounded pool of local ports for per-session form servers."""
import logging
import socket
from typing import Callable, Optional

from ..errors import PortExhaustedError

logger = logging.getLogger("agent_secrets.forms")

PortProbe = Callable[[str, int], bool]


def port_is_free(host: str, port: int) -> bool:
    """Return True if ``port`` can be bound on ``host`` right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


class PortPool:
    """Leases ports from ``[start, start + size)`` and takes them back.

    A leased port is never handed out twice; a released port becomes
    available again immediately.
    """

    def __init__(
        self,
        start: int,
        size: int,
        host: str = "127.0.0.1",
        probe: Optional[PortProbe] = None,
    ):
        if size < 1:
            raise ValueError("Port pool size must be at least 1")
        self.start = start
        self.size = size
        self.host = host
        self._probe = probe or port_is_free
        self._leased: set[int] = set()

    def __len__(self) -> int:
        return len(self._leased)

    @property
    def leased(self) -> frozenset[int]:
        return frozenset(self._leased)

    def acquire(self) -> int:
        """Lease the lowest free port of the pool.

        Ports held by other processes are skipped.

        Raises:
            PortExhaustedError: If no port of the pool can be leased.
        """
        for port in range(self.start, self.start + self.size):
            if port in self._leased:
                continue
            if not self._probe(self.host, port):
                logger.debug("Port %d is in use, skipping", port)
                continue
            self._leased.add(port)
            return port
        raise PortExhaustedError(
            f"No free port in {self.start}-{self.start + self.size - 1}"
        )

    def release(self, port: int) -> None:
        """Return a port to the pool; unknown ports are ignored."""
        self._leased.discard(port)
