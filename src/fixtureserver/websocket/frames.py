"""
=============================================================================
WEBSOCKET PROTOCOL (RFC 6455)
=============================================================================

=============================================================================
OPENING HANDSHAKE
=============================================================================

    GET / HTTP/1.1
    Upgrade: websocket
    Connection: Upgrade
    Sec-WebSocket-Key: dGhlIHNhbXBsZSBub25jZQ==
    Sec-WebSocket-Version: 13

    HTTP/1.1 101 Switching Protocols
    Upgrade: websocket
    Connection: Upgrade
    Sec-WebSocket-Accept: base64(sha1(key + GUID))

=============================================================================
FRAME FORMAT
=============================================================================

     0                   1                   2                   3
    ┌─┬─┬─┬─┬───────┬─┬─────────────┬───────────────────────────────┐
    │F│R│R│R│opcode │M│ payload len │  extended payload length      │
    │I│S│S│S│  (4)  │A│     (7)     │  (16 bits if len == 126,      │
    │N│V│V│V│       │S│             │   64 bits if len == 127)      │
    │ │1│2│3│       │K│             │                               │
    ├─┴─┴─┴─┴───────┴─┴─────────────┼───────────────────────────────┤
    │  masking key (32 bits, client → server frames only)           │
    ├───────────────────────────────────────────────────────────────┤
    │  payload (XOR'ed with the masking key, byte i with key[i % 4])│
    └───────────────────────────────────────────────────────────────┘

Control frames (close, ping, pong) are never fragmented and carry at most
125 bytes. A close payload is a 16-bit status code followed by a UTF-8
reason; an empty one means "no status" (1005).

=============================================================================
"""

import base64
import hashlib
import os
import struct
from dataclasses import dataclass
from enum import IntEnum
from http import HTTPStatus
from typing import Callable, Optional, Tuple

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder

GUID = "258EAFA5-E914-47DA-95CA-C5AB0DC85B11"

# Close status codes
CLOSE_NORMAL = 1000
CLOSE_PROTOCOL_ERROR = 1002
CLOSE_NO_STATUS = 1005
CLOSE_ABNORMAL = 1006
CLOSE_INVALID_DATA = 1007
CLOSE_TOO_BIG = 1009

MAX_CONTROL_PAYLOAD = 125


class Opcode(IntEnum):
    CONTINUATION = 0x0
    TEXT = 0x1
    BINARY = 0x2
    CLOSE = 0x8
    PING = 0x9
    PONG = 0xA


class WebSocketProtocolError(Exception):
    """
    The peer broke the protocol.

    Attributes:
        close_code: Status code to close the connection with.
    """

    def __init__(self, message: str, close_code: int = CLOSE_PROTOCOL_ERROR):
        super().__init__(message)
        self.close_code = close_code


@dataclass
class Frame:
    opcode: Opcode
    payload: bytes = b""
    fin: bool = True

    @property
    def is_control(self) -> bool:
        return self.opcode >= Opcode.CLOSE


# =============================================================================
# HANDSHAKE
# =============================================================================

def accept_key(key: str) -> str:
    """Sec-WebSocket-Accept value for a client's Sec-WebSocket-Key."""
    digest = hashlib.sha1((key + GUID).encode("ascii")).digest()
    return base64.b64encode(digest).decode("ascii")


def handshake_response(request: HTTPRequest) -> HTTPResponse:
    """
    Validate an upgrade request and build the 101 answer.

    Raises:
        WebSocketProtocolError: Not a usable WebSocket upgrade.
    """
    if request.method != "GET":
        raise WebSocketProtocolError(f"Upgrade must use GET, not {request.method}")
    if not request.is_websocket_upgrade:
        raise WebSocketProtocolError("Missing Upgrade: websocket")

    key = request.get_header("sec-websocket-key").strip()
    if not key:
        raise WebSocketProtocolError("Missing Sec-WebSocket-Key header")

    version = request.get_header("sec-websocket-version").strip()
    if version != "13":
        raise WebSocketProtocolError(f"Unsupported Sec-WebSocket-Version: {version or '(none)'}")

    return (ResponseBuilder()
        .status(HTTPStatus.SWITCHING_PROTOCOLS)
        .header("Upgrade", "websocket")
        .header("Connection", "Upgrade")
        .header("Sec-WebSocket-Accept", accept_key(key))
        .build())


# =============================================================================
# FRAMES
# =============================================================================

def apply_mask(payload: bytes, mask: bytes) -> bytes:
    """XOR payload with the 4-byte masking key (masking and unmasking)."""
    return bytes(b ^ mask[i % 4] for i, b in enumerate(payload))


def encode_frame(opcode: int, payload: bytes = b"", fin: bool = True, mask: bool = False) -> bytes:
    """
    Serialize one frame.

    Servers send unmasked frames; mask=True builds client frames, which
    the tests use to talk to the server.
    """
    first_byte = (0x80 if fin else 0) | opcode
    mask_bit = 0x80 if mask else 0

    length = len(payload)
    if length < 126:
        header = struct.pack("!BB", first_byte, mask_bit | length)
    elif length < 65536:
        header = struct.pack("!BBH", first_byte, mask_bit | 126, length)
    else:
        header = struct.pack("!BBQ", first_byte, mask_bit | 127, length)

    if mask:
        mask_key = os.urandom(4)
        return header + mask_key + apply_mask(payload, mask_key)
    return header + payload


def read_frame(
    read_exact: Callable[[int], Optional[bytes]],
    require_mask: bool = True,
    max_payload: Optional[int] = None,
) -> Optional[Frame]:
    """
    Read one frame.

    Args:
        read_exact: Returns exactly n bytes, or None at end of stream
            (Connection.read_exact).
        require_mask: Reject unmasked frames (server side).
        max_payload: Largest accepted payload, in bytes.

    Returns:
        The frame with its payload unmasked, or None if the stream ended.

    Raises:
        WebSocketProtocolError: Malformed or disallowed frame.
    """
    header = read_exact(2)
    if header is None:
        return None
    first_byte, second_byte = struct.unpack("!BB", header)

    fin = bool(first_byte & 0x80)
    if first_byte & 0x70:
        raise WebSocketProtocolError("Reserved bits set without a negotiated extension")

    try:
        opcode = Opcode(first_byte & 0x0F)
    except ValueError:
        raise WebSocketProtocolError(f"Unknown opcode: {first_byte & 0x0F:#x}")

    masked = bool(second_byte & 0x80)
    if require_mask and not masked:
        raise WebSocketProtocolError("Client frames must be masked")

    length = second_byte & 0x7F
    if length == 126:
        extended = read_exact(2)
        if extended is None:
            return None
        length = struct.unpack("!H", extended)[0]
    elif length == 127:
        extended = read_exact(8)
        if extended is None:
            return None
        length = struct.unpack("!Q", extended)[0]

    frame = Frame(opcode=opcode, fin=fin)
    if frame.is_control and (not fin or length > MAX_CONTROL_PAYLOAD):
        raise WebSocketProtocolError(f"Invalid control frame: fin={fin} length={length}")
    if max_payload is not None and length > max_payload:
        raise WebSocketProtocolError(f"Frame too large: {length} bytes", CLOSE_TOO_BIG)

    mask_key = None
    if masked:
        mask_key = read_exact(4)
        if mask_key is None:
            return None

    payload = read_exact(length) if length else b""
    if payload is None:
        return None

    frame.payload = apply_mask(payload, mask_key) if mask_key else payload
    return frame


# =============================================================================
# CLOSE PAYLOAD
# =============================================================================

def encode_close_payload(code: int = CLOSE_NORMAL, reason: str = "") -> bytes:
    """Close payload; 1005 (no status) is sent as an empty payload."""
    if code == CLOSE_NO_STATUS:
        return b""
    return struct.pack("!H", code) + reason.encode("utf-8")


def parse_close_payload(payload: bytes) -> Tuple[int, str]:
    """
    (code, reason) from a close frame payload.

    Raises:
        WebSocketProtocolError: One stray byte, or a reason that is not UTF-8.
    """
    if not payload:
        return CLOSE_NO_STATUS, ""
    if len(payload) < 2:
        raise WebSocketProtocolError("Close payload too short")

    code = struct.unpack("!H", payload[:2])[0]
    try:
        reason = payload[2:].decode("utf-8")
    except UnicodeDecodeError:
        raise WebSocketProtocolError("Close reason is not valid UTF-8", CLOSE_INVALID_DATA)
    return code, reason
