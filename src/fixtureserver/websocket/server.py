"""
=============================================================================
WEBSOCKET TEST SERVER
=============================================================================

A WebSocket endpoint whose behaviour tests can observe and steer.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ event        │ what the server does                                 │
    ├──────────────┼──────────────────────────────────────────────────────┤
    │ open         │ remember the handshake request; hand the socket to a │
    │              │ pending wait_for_web_socket() future, otherwise send │
    │              │ the text "incoming"                                  │
    │ message      │ log "message: <text>"; complete a pending            │
    │              │ wait_for_message() future                            │
    │ close        │ log "close: code=<code> reason=<reason>"             │
    │ error        │ log "error: <exception>", close with 1002            │
    └─────────────────────────────────────────────────────────────────────┘

Both waits are single slots: the first call creates the future, later
calls get the same one until an event completes it and clears the slot.

    server = WebSocketTestServer.create()
    waiter = server.wait_for_web_socket()
    browser.evaluate(f"new WebSocket('{server.url}')")
    ws = waiter.result(timeout=5)
    ws.send("hello")
    ...
    assert server.log_copy() == ["message: hi", "close: code=1000 reason="]

Binary messages are decoded as UTF-8 and logged like text ones.

=============================================================================
"""

import logging
import threading
from concurrent.futures import Future
from http import HTTPStatus
from typing import List, Optional, Union

from ..config import ServerConfig
from ..core import Connection, ConnectionState, SocketServer
from ..http.request import HTTPParseError, HTTPRequest, RequestParser
from ..http.response import error_response
from .frames import (
    CLOSE_ABNORMAL,
    CLOSE_INVALID_DATA,
    CLOSE_NO_STATUS,
    CLOSE_NORMAL,
    Opcode,
    WebSocketProtocolError,
    encode_close_payload,
    encode_frame,
    handshake_response,
    parse_close_payload,
    read_frame,
)

logger = logging.getLogger(__name__)


class WebSocketConnection:
    """
    Server side of one open WebSocket.

    Sending is thread-safe: tests send from their own thread while the
    connection thread answers pings.
    """

    def __init__(self, conn: Connection, request: HTTPRequest):
        self.connection = conn
        self.request = request
        self.close_sent = False
        self._send_lock = threading.Lock()

    @property
    def remote_address(self) -> tuple:
        return self.connection.address

    def send(self, message: Union[str, bytes]) -> bool:
        """Send a text (str) or binary (bytes) message."""
        if isinstance(message, str):
            return self.send_frame(Opcode.TEXT, message.encode("utf-8"))
        return self.send_frame(Opcode.BINARY, bytes(message))

    def ping(self, payload: bytes = b"") -> bool:
        return self.send_frame(Opcode.PING, payload)

    def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> bool:
        """Start (or answer) the closing handshake. Only the first call sends."""
        with self._send_lock:
            if self.close_sent:
                return False
            self.close_sent = True
            return self.connection.send(encode_frame(Opcode.CLOSE, encode_close_payload(code, reason)))

    def send_frame(self, opcode: Opcode, payload: bytes) -> bool:
        with self._send_lock:
            if self.close_sent:
                return False
            return self.connection.send(encode_frame(opcode, payload))

    def __repr__(self) -> str:
        return f"<WebSocketConnection {self.connection.id} {self.remote_address[0]}:{self.remote_address[1]}>"


class WebSocketTestServer:
    """
    WebSocket server for tests.

    Attributes:
        port: Bound port.
        url: ws://localhost:port
        last_client_handshake: Upgrade request of the latest connection.
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig()
        self.config.validate()

        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._lock = threading.Lock()
        self._future_web_socket: Optional[Future] = None
        self._future_message: Optional[Future] = None
        self._log: List[str] = []
        self.last_client_handshake: Optional[HTTPRequest] = None

        self._socket_server = SocketServer(self.config, name="ws-fixtureserver")
        self.port = self._socket_server.bind()
        self.url = f"ws://localhost:{self.port}"
        self._socket_server.start(self._process_connection)

    @classmethod
    def create(cls, port: int = 0, config: Optional[ServerConfig] = None) -> "WebSocketTestServer":
        """Start a server; it is listening when this returns."""
        return cls((config or ServerConfig()).with_port(port))

    # =========================================================================
    # TEST SURFACE
    # =========================================================================

    def wait_for_web_socket(self) -> Future:
        """Future of the next WebSocketConnection to open."""
        with self._lock:
            if self._future_web_socket is None:
                self._future_web_socket = Future()
            return self._future_web_socket

    def wait_for_message(self) -> Future:
        """Future of the next message text received on any connection."""
        with self._lock:
            if self._future_message is None:
                self._future_message = Future()
            return self._future_message

    def log_copy(self) -> List[str]:
        with self._lock:
            return list(self._log)

    def reset(self) -> None:
        """Forget both pending waits and the event log."""
        with self._lock:
            self._future_web_socket = None
            self._future_message = None
            self._log.clear()

    def close(self) -> None:
        self._socket_server.shutdown()
        logger.info(f"WebSocket server stopped: {self.url}")

    def __enter__(self) -> "WebSocketTestServer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    # =========================================================================
    # EVENTS
    # =========================================================================

    def _add_log(self, line: str) -> None:
        with self._lock:
            self._log.append(line)

    def _on_open(self, websocket: WebSocketConnection) -> None:
        with self._lock:
            self.last_client_handshake = websocket.request
            future, self._future_web_socket = self._future_web_socket, None

        logger.debug(f"WebSocket opened: {websocket}")
        if future is not None and future.set_running_or_notify_cancel():
            future.set_result(websocket)
            return
        websocket.send("incoming")

    def _on_message(self, text: str) -> None:
        with self._lock:
            self._log.append(f"message: {text}")
            future, self._future_message = self._future_message, None

        if future is not None and future.set_running_or_notify_cancel():
            future.set_result(text)

    def _on_close(self, code: int, reason: str) -> None:
        logger.debug(f"WebSocket closed: code={code} reason={reason}")
        self._add_log(f"close: code={code} reason={reason}")

    def _on_error(self, error: Exception) -> None:
        logger.debug(f"WebSocket error: {error!r}")
        self._add_log(f"error: {error}")

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _process_connection(self, conn: Connection) -> None:
        """Opening handshake, then frames until the socket closes."""
        with conn:
            try:
                raw_request = conn.read_request()
            except (TimeoutError, ValueError) as e:
                logger.debug(f"[{conn.id}] No usable upgrade request: {e}")
                return
            if raw_request is None:
                return

            try:
                request = self._parser.parse(raw_request, conn.address)
                response = handshake_response(request)
            except HTTPParseError as e:
                conn.send(error_response(e.status_code, str(e)).to_bytes(self.config.server_name))
                return
            except WebSocketProtocolError as e:
                conn.send(error_response(HTTPStatus.BAD_REQUEST, str(e)).to_bytes(self.config.server_name))
                return

            if not conn.send(response.to_bytes(self.config.server_name)):
                return
            conn.state = ConnectionState.UPGRADED

            websocket = WebSocketConnection(conn, request)
            self._on_open(websocket)
            self._serve_frames(websocket)

    def _serve_frames(self, websocket: WebSocketConnection) -> None:
        conn = websocket.connection
        fragments: List[bytes] = []
        message_opcode: Optional[Opcode] = None

        try:
            while True:
                frame = read_frame(conn.read_exact, max_payload=self.config.max_request_size)
                if frame is None:
                    self._on_close(CLOSE_ABNORMAL, "")
                    return

                if frame.opcode == Opcode.CLOSE:
                    code, reason = parse_close_payload(frame.payload)
                    websocket.close(CLOSE_NORMAL if code == CLOSE_NO_STATUS else code, "")
                    self._on_close(code, reason)
                    return

                if frame.opcode == Opcode.PING:
                    websocket.send_frame(Opcode.PONG, frame.payload)
                    continue

                if frame.opcode == Opcode.PONG:
                    continue

                # Data frames, possibly fragmented
                if frame.opcode == Opcode.CONTINUATION:
                    if message_opcode is None:
                        raise WebSocketProtocolError("Continuation frame without a message")
                elif message_opcode is not None:
                    raise WebSocketProtocolError("New message before the previous one finished")
                else:
                    message_opcode = frame.opcode

                fragments.append(frame.payload)
                if not frame.fin:
                    continue

                text = self._decode(b"".join(fragments), message_opcode)
                fragments, message_opcode = [], None
                self._on_message(text)

        except WebSocketProtocolError as e:
            self._on_error(e)
            websocket.close(e.close_code, str(e))
            self._on_close(e.close_code, str(e))

    @staticmethod
    def _decode(payload: bytes, opcode: Opcode) -> str:
        """Message text; binary payloads are decoded leniently."""
        if opcode == Opcode.BINARY:
            return payload.decode("utf-8", errors="replace")
        try:
            return payload.decode("utf-8")
        except UnicodeDecodeError:
            raise WebSocketProtocolError("Text message is not valid UTF-8", CLOSE_INVALID_DATA)
