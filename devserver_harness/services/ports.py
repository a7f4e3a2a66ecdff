"""Free-port discovery with process-wide bookkeeping.

Every port handed out stays reserved for the life of the process, so two
cases running at the same time can never be given the same port.
"""

from __future__ import annotations

import socket
import threading

from devserver_harness.core.exceptions import PortAllocationError
from devserver_harness.core.logging import get_logger
from devserver_harness.domain.endpoint import DevServerVersion, ServiceEndpoint

logger = get_logger("ports")


class PortAllocator:
    """Hands out distinct free TCP ports, safe under concurrent callers."""

    def __init__(self, bind_host: str = "", max_attempts: int = 50):
        self.bind_host = bind_host
        self.max_attempts = max_attempts
        self._reserved: set[int] = set()
        self._lock = threading.Lock()

    def _probe_free_port(self) -> int:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind((self.bind_host, 0))
            return sock.getsockname()[1]

    def find_port(self) -> int:
        """Reserve and return a port nobody else in this process holds."""
        with self._lock:
            for _ in range(self.max_attempts):
                try:
                    port = self._probe_free_port()
                except OSError as e:
                    raise PortAllocationError(f"Cannot bind a probe socket: {e}") from e
                if port not in self._reserved:
                    self._reserved.add(port)
                    return port
            raise PortAllocationError(
                f"No unreserved port found after {self.max_attempts} attempts",
                details={"reserved": len(self._reserved)},
            )

    def allocate_endpoint(
        self, version: DevServerVersion, host: str = "localhost"
    ) -> ServiceEndpoint:
        """Reserve a server port, plus an admin port when the variant needs one."""
        port = self.find_port()
        admin_port = self.find_port() if version.requires_admin_port else None
        endpoint = ServiceEndpoint(host=host, port=port, admin_port=admin_port)
        logger.debug(f"Allocated {endpoint.url} (admin port: {admin_port})")
        return endpoint

    def is_reserved(self, port: int) -> bool:
        with self._lock:
            return port in self._reserved

    @property
    def reserved_count(self) -> int:
        with self._lock:
            return len(self._reserved)


default_allocator = PortAllocator()


def find_port() -> int:
    """Reserve a free port from the process-wide allocator."""
    return default_allocator.find_port()
