"""
=============================================================================
CORE NETWORKING
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │ SocketServer (socket_server.py)                                     │
    │   bind/listen, background accept loop, one daemon thread per        │
    │   connection, shutdown that interrupts live connections             │
    ├─────────────────────────────────────────────────────────────────────┤
    │ Connection (connection.py)                                          │
    │   buffered request/frame reads, sendall, server-side TLS upgrade,   │
    │   graceful close                                                    │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .connection import Connection, ConnectionState
from .socket_server import SocketServer, ConnectionHandler

__all__ = [
    "Connection",
    "ConnectionState",
    "SocketServer",
    "ConnectionHandler",
]
