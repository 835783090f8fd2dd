"""
WebSocket test server: RFC 6455 handshake and frame codec (frames.py) and
an endpoint tests can observe and steer (server.py).
"""

from .frames import (
    GUID,
    Frame,
    Opcode,
    WebSocketProtocolError,
    accept_key,
    encode_frame,
    read_frame,
)
from .server import WebSocketConnection, WebSocketTestServer

__all__ = [
    "GUID",
    "Frame",
    "Opcode",
    "WebSocketProtocolError",
    "accept_key",
    "encode_frame",
    "read_frame",
    "WebSocketConnection",
    "WebSocketTestServer",
]
