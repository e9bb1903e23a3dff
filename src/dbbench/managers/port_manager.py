"""Port allocation and conflict detection."""

import errno
import socket
from typing import Callable, Iterable, Set, Tuple

from dbbench.models.schemas import PortResult
from dbbench.utils import get_logger
from dbbench.utils.exceptions import PortExhaustedError

logger = get_logger(__name__)


class PortManager:
    """Finds free TCP ports, skipping ports recorded by managed containers."""

    def __init__(
        self,
        container_ports: Callable[[str | None], Set[int]] | None = None,
        host: str = "127.0.0.1",
    ) -> None:
        """
        Initialize port manager.

        Args:
            container_ports: Callable returning the ports recorded by managed
                containers, excluding the named one
            host: Address availability is checked against
        """
        self._container_ports = container_ports
        self.host = host

    def is_port_available(self, port: int, host: str | None = None) -> bool:
        """
        Check whether a port can be bound right now.

        Args:
            port: TCP port
            host: Address to bind; defaults to the manager's host

        Returns:
            True if the port is free
        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 0)
            sock.bind((host or self.host, port))
        except OSError as e:
            if e.errno in (errno.EADDRINUSE, errno.EACCES):
                return False
            # Other bind errors say nothing about another listener
            logger.debug("Unexpected bind error", extra={"port": port, "error": str(e)})
            return True
        finally:
            sock.close()
        return True

    def get_container_ports(self, exclude: str | None = None) -> Set[int]:
        """
        Collect ports recorded by managed containers.

        Args:
            exclude: Container whose own ports are ignored

        Returns:
            Set of primary and auxiliary ports
        """
        if self._container_ports is None:
            return set()
        return set(self._container_ports(exclude))

    def find_available_port(
        self,
        port_range: Tuple[int, int],
        preferred: int | None = None,
        exclude: str | None = None,
        span: int = 1,
        avoid: Iterable[int] = (),
    ) -> PortResult:
        """
        Find a free port, trying the preferred port first.

        Args:
            port_range: Inclusive (start, end) range to scan
            preferred: Port to try before scanning; defaults to the range start
            exclude: Container whose recorded ports may be reused
            span: Number of consecutive ports that must be free
            avoid: Additional ports that must not be chosen

        Returns:
            PortResult with the chosen port

        Raises:
            PortExhaustedError: If no port in the range is free
        """
        start, end = port_range
        preferred = start if preferred is None else preferred
        reserved = self.get_container_ports(exclude) | set(avoid)

        if self._block_free(preferred, span, reserved):
            return PortResult(port=preferred, is_default=True)

        for port in range(start, end + 1):
            if port == preferred:
                continue
            if port + span - 1 > end:
                break
            if self._block_free(port, span, reserved):
                logger.debug(
                    "Preferred port unavailable, using alternative",
                    extra={"preferred": preferred, "port": port},
                )
                return PortResult(port=port, is_default=False)

        raise PortExhaustedError(start, end)

    def _block_free(self, port: int, span: int, reserved: Iterable[int]) -> bool:
        block = range(port, port + span)
        if any(p in reserved for p in block):
            return False
        return all(self.is_port_available(p) for p in block)
