"""
Per-owner server bookkeeping for test suites.

One Server per test class, created on first use and stopped after the
class finishes:

    lifecycle = ServerLifecycle()

    @pytest.fixture(scope="class")
    def server(request):
        yield lifecycle.get_or_create(request.cls)
        lifecycle.stop(request.cls)
"""

import dataclasses
import logging
import socket
import threading
from typing import Any, Dict, Hashable, Optional

from .config import ServerConfig
from .server import Server

logger = logging.getLogger(__name__)


def next_free_port(host: str = "127.0.0.1") -> int:
    """
    A port nothing is listening on right now.

    The port is released before returning, so another process could take
    it first; servers that can bind port 0 directly should do that instead.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


class ServerLifecycle:
    """Map of owner key (usually a test class) → running Server."""

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config
        self._servers: Dict[Hashable, Server] = {}
        self._lock = threading.Lock()

    def get(self, owner: Hashable) -> Optional[Server]:
        with self._lock:
            return self._servers.get(owner)

    def get_or_create(self, owner: Hashable) -> Server:
        """The owner's server, started on an OS-assigned port if it has none yet."""
        with self._lock:
            server = self._servers.get(owner)
            if server is None:
                config = dataclasses.replace(self.config or ServerConfig(), port=0)
                server = Server.create_http(config=config)
                self._servers[owner] = server
                logger.debug(f"Started {server!r} for {_describe(owner)}")
            return server

    def stop(self, owner: Hashable) -> None:
        """Stop and forget the owner's server, if any."""
        with self._lock:
            server = self._servers.pop(owner, None)
        if server is not None:
            server.stop()

    def stop_all(self) -> None:
        with self._lock:
            servers = list(self._servers.values())
            self._servers.clear()
        for server in servers:
            server.stop()

    def __len__(self) -> int:
        with self._lock:
            return len(self._servers)


def _describe(owner: Any) -> str:
    return getattr(owner, "__qualname__", repr(owner))
