"""
Host port allocation for environment ingress.

Scans a window of ports above a configured base and picks the port right
after the run of occupied ports that starts at the base.
"""

import asyncio
import logging
import socket
from typing import List

from ..errors import PortRangeExhausted

logger = logging.getLogger(__name__)


class PortAllocator:
    """Finds a free host port near a configured base."""

    DEFAULT_WINDOW = 99
    MAX_PORT = 65535

    def __init__(self, base: int, window: int = DEFAULT_WINDOW, host: str = "127.0.0.1"):
        """
        Initialize the allocator.

        Args:
            base: First port of the scan; expected to be occupied (usually by
                the service fronting the environments)
            window: Number of ports scanned, base included
            host: Address the availability check binds to
        """
        self.base = base
        self.window = window
        self.host = host

    async def allocate(self) -> int:
        """
        Return the first free port following the occupied ports at the base.

        Ports base, base+1, ... are checked in order and the scan stops at the
        first port that binds. The base port itself being free is treated as
        exhaustion from the low end: there is no occupied run to extend.

        Returns:
            The allocated port

        Raises:
            PortRangeExhausted: If the base port is free or every port of the
                window is occupied
        """
        end = min(self.base + self.window, self.MAX_PORT + 1)
        occupied: List[int] = []

        for port in range(self.base, end):
            if await asyncio.to_thread(self._is_port_available, port):
                break
            occupied.append(port)
        else:
            logger.error(f"All ports in {self.base}-{end - 1} are in use")
            raise PortRangeExhausted(self.base, self.window)

        if not occupied:
            logger.error(f"Base port {self.base} is not in use")
            raise PortRangeExhausted(
                self.base,
                self.window,
                reason=f"base port {self.base} is free, expected it to be occupied",
            )

        port = occupied[-1] + 1
        logger.debug(f"Skipped {len(occupied)} occupied port(s), allocated {port}")
        return port

    def _is_port_available(self, port: int) -> bool:
        """Try to bind a transient listener on the port, releasing it immediately."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            try:
                sock.bind((self.host, port))
                return True
            except OSError:
                return False
