"""
=============================================================================
SOCKET SERVER
=============================================================================

The TCP layer: bind, listen, accept, and one thread per connection.

=============================================================================
THREADING MODEL
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  caller thread            accept thread          connection threads │
    │  ─────────────            ─────────────          ────────────────── │
    │  bind()                                                             │
    │    socket/bind/listen                                               │
    │    port known ◄── returns                                           │
    │  start(handler) ────────► _accept_loop()                            │
    │                             accept() ──────────► handler(conn)      │
    │                             accept() ──────────► handler(conn)      │
    │                             ...                    (daemon threads) │
    │  shutdown()                                                         │
    │    _running = False                                                 │
    │    close listener  ───────► loop exits                              │
    │    interrupt live conns ─────────────────────────► recv() → b""     │
    └─────────────────────────────────────────────────────────────────────┘

A browser keeps several keep-alive connections open per origin, each
parked in recv() between requests. A bounded worker pool would starve
new connections behind idle ones, so every connection gets its own
daemon thread. Daemon threads never keep the test process alive.

bind() is separate from start() so the caller learns the real port
(port 0 = "any free port") before the server is announced to tests.

There are no signal handlers: the server is embedded in a test process
that owns SIGINT/SIGTERM.

=============================================================================
"""

import logging
import socket
import threading
from typing import Callable, Optional, Set

from ..config import ServerConfig
from .connection import Connection

logger = logging.getLogger(__name__)


ConnectionHandler = Callable[[Connection], None]


class SocketServer:
    """
    Low-level TCP server.

    Usage:
        server = SocketServer(config)
        port = server.bind()
        server.start(handle_connection)   # returns immediately
        ...
        server.shutdown()
    """

    def __init__(self, config: ServerConfig, name: str = "fixtureserver"):
        self.config = config
        self.name = name

        self._socket: Optional[socket.socket] = None
        self._port: Optional[int] = None
        self._running = False
        self._accept_thread: Optional[threading.Thread] = None

        # Live connections, so shutdown() can interrupt them
        self._connections: Set[Connection] = set()
        self._connections_lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def port(self) -> int:
        if self._port is None:
            raise RuntimeError("Server socket is not bound yet")
        return self._port

    def _create_socket(self) -> socket.socket:
        """
        TCP socket with the options a test server wants.

        SO_REUSEADDR lets a port be rebound while old connections sit in
        TIME_WAIT. TCP_NODELAY sends small responses immediately. The 1s
        accept timeout lets the loop notice shutdown.
        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(1.0)
        return sock

    def bind(self) -> int:
        """
        Create, bind and listen.

        Returns:
            The bound port (the OS-assigned one when config.port is 0).

        Raises:
            OSError: The address is unavailable.
        """
        self._socket = self._create_socket()
        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error(f"Failed to bind to {self.config.host}:{self.config.port}: {e}")
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)
        self._port = self._socket.getsockname()[1]
        logger.info(f"{self.name} listening on {self.config.host}:{self._port}")
        return self._port

    def start(self, connection_handler: ConnectionHandler) -> None:
        """
        Start the accept loop in a background thread.

        Args:
            connection_handler: Runs in a fresh thread for each connection.
                The handler owns the connection and must close it.
        """
        if self._socket is None:
            self.bind()

        self._running = True
        self._accept_thread = threading.Thread(
            target=self._accept_loop,
            args=(connection_handler,),
            name=f"{self.name}-accept-{self._port}",
            daemon=True,
        )
        self._accept_thread.start()

    def _accept_loop(self, connection_handler: ConnectionHandler) -> None:
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                # Listener closed by shutdown()
                if self._running:
                    logger.error(f"Accept error: {e}")
                break

            conn = Connection(
                socket=client_socket,
                address=client_address,
                buffer_size=self.config.buffer_size,
                timeout=self.config.timeout,
                keep_alive_timeout=self.config.keep_alive_timeout,
                max_request_size=self.config.max_request_size,
            )
            logger.debug(f"[{conn.id}] Accepted connection from {client_address[0]}:{client_address[1]}")

            if not self._track(conn):
                break

            threading.Thread(
                target=self._run_connection,
                args=(connection_handler, conn),
                name=f"{self.name}-conn-{conn.id}",
                daemon=True,
            ).start()

    def _track(self, conn: Connection) -> bool:
        """
        Register a live connection so shutdown() can interrupt it.

        A connection accepted while shutdown() was running may have missed
        its snapshot; it is aborted here instead.
        """
        with self._connections_lock:
            self._connections.add(conn)
        if self._running:
            return True

        with self._connections_lock:
            self._connections.discard(conn)
        conn.abort()
        logger.debug(f"[{conn.id}] Aborted connection accepted during shutdown")
        return False

    def _run_connection(self, connection_handler: ConnectionHandler, conn: Connection) -> None:
        try:
            connection_handler(conn)
        except Exception as e:
            logger.exception(f"[{conn.id}] Unhandled connection error: {e}")
            conn.abort()
        finally:
            with self._connections_lock:
                self._connections.discard(conn)

    def shutdown(self, timeout: float = 5.0) -> None:
        """
        Stop accepting and interrupt every live connection.

        Safe to call from any thread, and more than once. Does not wait
        for route handlers that are still running; their threads are
        daemons and their sockets are already shut down.
        """
        if not self._running and self._socket is None:
            return

        logger.info(f"Shutting down {self.name} on port {self._port}")
        self._running = False

        if self._socket is not None:
            # shutdown() wakes a blocked accept() on Linux; close() alone does not
            try:
                self._socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            self._socket.close()
            self._socket = None

        with self._connections_lock:
            live = list(self._connections)
        if live:
            logger.debug(f"Interrupting {len(live)} live connection(s)")
        for conn in live:
            conn.interrupt()

        if self._accept_thread is not None and self._accept_thread is not threading.current_thread():
            self._accept_thread.join(timeout=timeout)
        self._accept_thread = None
