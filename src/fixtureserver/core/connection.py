"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket with buffered reads, TLS upgrade and a
clean close.

=============================================================================
TCP IS A BYTE STREAM
=============================================================================

recv() returns whatever the kernel has, not whole messages:

    Client sends:   "GET /empty.html HTTP/1.1\r\nHost: x\r\n\r\n"
    recv() may see: "GET /emp"  +  "ty.html HTTP/1.1\r\nHo"  +  "st: x\r\n\r\n"

So every read goes through _buffer:

    ┌────────────────────────────────────────────────────────────────────┐
    │ read_request()  recv until \r\n\r\n, then until the body is        │
    │                 complete (Content-Length bytes, or the last chunk  │
    │                 of a chunked body); return one request,            │
    │                 keep any pipelined extra bytes for the next call   │
    │                                                                    │
    │ read_exact(n)   recv until n bytes are buffered (WebSocket frames) │
    └────────────────────────────────────────────────────────────────────┘

=============================================================================
TLS
=============================================================================

The accept loop hands out plain sockets. start_tls() runs the server-side
handshake in the connection's own thread, so a slow or failing handshake
never stalls accept():

    accept()  ──►  Connection(plain)  ──►  worker thread
                                              │
                                              ├── start_tls(context)
                                              │     wrap_socket(server_side=True)
                                              │     handshake
                                              │
                                              └── read_request() ...

=============================================================================
"""

import logging
import socket
import ssl
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from ..http.request import HTTPParseError, decode_chunked, is_chunked

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states, for logging and close bookkeeping."""

    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    UPGRADED = "upgraded"      # handed over to the WebSocket protocol
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass(eq=False)
class Connection:
    """
    A client connection.

    Attributes:
        socket: Client socket (an SSLSocket after start_tls()).
        address: Client (ip, port).
        id: Short identifier used in log lines.
        state: Current ConnectionState.
        requests_handled: Requests read so far on this connection.
        created_at: Accept time, for the connection lifetime in the close log.
    """

    socket: socket.socket
    address: tuple
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    keep_alive_timeout: float = 5.0
    max_request_size: int = 64 * 1024 * 1024

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def is_tls(self) -> bool:
        return isinstance(self.socket, ssl.SSLSocket)

    @property
    def peer_certificate(self) -> Optional[Dict[str, Any]]:
        """Verified client certificate as decoded by the ssl module, if any."""
        if not self.is_tls:
            return None
        return self.socket.getpeercert() or None

    # =========================================================================
    # TLS
    # =========================================================================

    def start_tls(self, context: ssl.SSLContext) -> None:
        """
        Upgrade the socket to TLS (server side).

        Raises:
            ssl.SSLError / OSError: Handshake failed; the caller closes.
        """
        self.socket = context.wrap_socket(self.socket, server_side=True)
        self.socket.settimeout(self.timeout)
        logger.debug(f"[{self.id}] TLS established ({self.socket.version()})")

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request.

        The body is framed by Transfer-Encoding: chunked or Content-Length.
        A client that sent "Expect: 100-continue" gets the interim
        "100 Continue" before the body is read.

        Returns:
            Request bytes (head + framed body), or None if the client
            closed the connection or a keep-alive wait timed out.

        Raises:
            TimeoutError: First request did not arrive in time.
            ValueError: Request exceeds max_request_size.
        """
        self.state = ConnectionState.READING

        if self.requests_handled > 0:
            self.socket.settimeout(self.keep_alive_timeout)

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None
                self._buffer += chunk
                self._check_size()

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            head = self._buffer[:header_end]

            if is_chunked(self._header_value(head, b"transfer-encoding")):
                request_end = self._read_chunked_body(head, body_start)
            else:
                content_length = self._parse_content_length(head)
                if len(self._buffer) - body_start < content_length:
                    self._send_continue(head)

                while len(self._buffer) - body_start < content_length:
                    chunk = self._recv()
                    if not chunk:
                        break  # closed mid-body; the parser reports the short body
                    self._buffer += chunk
                    self._check_size()
                request_end = body_start + content_length

            request_data = self._buffer[:request_end]
            self._buffer = self._buffer[request_end:]

            self.requests_handled += 1
            return request_data

        except socket.timeout:
            if self.requests_handled > 0:
                logger.debug(f"[{self.id}] Keep-alive timeout")
                return None
            raise TimeoutError("Request read timeout")

        finally:
            if self.state != ConnectionState.CLOSED:
                try:
                    self.socket.settimeout(self.timeout)
                except OSError:
                    pass

    def _read_chunked_body(self, head: bytes, body_start: int) -> int:
        """
        Buffer a chunked body up to its terminating empty trailer line.

        Returns:
            Offset in _buffer where the request ends. A malformed or
            truncated body ends the request at the buffered bytes and is
            left for the parser to reject.
        """
        continue_sent = False
        while True:
            try:
                decoded = decode_chunked(self._buffer[body_start:])
            except HTTPParseError:
                return len(self._buffer)
            if decoded is not None:
                return body_start + decoded[1]

            if not continue_sent and len(self._buffer) == body_start:
                self._send_continue(head)
                continue_sent = True

            chunk = self._recv()
            if not chunk:
                return len(self._buffer)
            self._buffer += chunk
            self._check_size()

    def _send_continue(self, head: bytes) -> None:
        """Send "100 Continue" if the client is holding its body back for it."""
        if self._header_value(head, b"expect").lower() != "100-continue":
            return
        logger.debug(f"[{self.id}] 100 Continue")
        try:
            self.socket.sendall(b"HTTP/1.1 100 Continue\r\n\r\n")
        except OSError as e:
            logger.debug(f"[{self.id}] Send failed: {e}")

    def read_exact(self, size: int) -> Optional[bytes]:
        """
        Read exactly size bytes, or None if the peer closed first.

        Buffered bytes left over from read_request() are consumed first.
        """
        while len(self._buffer) < size:
            chunk = self._recv()
            if not chunk:
                return None
            self._buffer += chunk

        data, self._buffer = self._buffer[:size], self._buffer[size:]
        return data

    def _recv(self) -> bytes:
        """recv() that maps a dead socket to b"" (end of stream)."""
        try:
            data = self.socket.recv(self.buffer_size)
        except socket.timeout:
            raise
        except OSError:
            # reset by peer, or closed under us by Server.stop()
            return b""
        return data

    def _check_size(self) -> None:
        if len(self._buffer) > self.max_request_size:
            raise ValueError(f"Request too large: {len(self._buffer)} bytes")

    @classmethod
    def _parse_content_length(cls, head: bytes) -> int:
        """Content-Length from raw header bytes, 0 if absent or invalid."""
        try:
            return max(int(cls._header_value(head, b"content-length") or "0"), 0)
        except ValueError:
            return 0

    @staticmethod
    def _header_value(head: bytes, name: bytes) -> str:
        """First value of a header in a raw header block, "" if absent."""
        for line in head.split(b"\r\n")[1:]:
            key, _, value = line.partition(b":")
            if key.strip().lower() == name:
                return value.strip().decode("iso-8859-1")
        return ""

    # =========================================================================
    # WRITING
    # =========================================================================

    def send(self, data: bytes) -> bool:
        """
        Send all bytes.

        Returns:
            True on success, False if the connection is gone.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
        except OSError as e:
            logger.debug(f"[{self.id}] Send failed: {e}")
            return False
        return True

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self) -> None:
        """
        Close gracefully: send FIN, drain briefly, release the socket.
        Safe to call more than once.
        """
        if self.state == ConnectionState.CLOSED:
            return
        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        self.abort()
        logger.debug(
            f"[{self.id}] Connection closed after {self.requests_handled} requests "
            f"({time.time() - self.created_at:.2f}s)"
        )

    def interrupt(self) -> None:
        """
        Wake up a thread blocked in recv() on this connection.

        Called from another thread by SocketServer.shutdown(). The owning
        thread sees end-of-stream and runs its normal close path.
        """
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass

    def abort(self) -> None:
        """Close immediately without the shutdown handshake."""
        try:
            self.socket.close()
        except OSError:
            pass
        self.state = ConnectionState.CLOSED

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
