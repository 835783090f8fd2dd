"""
=============================================================================
FIXTURE SERVER
=============================================================================

The orchestrator that ties the components together into an embeddable
HTTP/HTTPS server for browser-automation tests.

=============================================================================
ARCHITECTURE OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                           Server                                    │
    │                                                                     │
    │   test thread ──► set_route / set_auth / set_csp / enable_gzip      │
    │                   future_request / reset                            │
    │                          │                                          │
    │                          ▼                                          │
    │                  ┌───────────────┐                                  │
    │                  │ RouteRegistry │ ◄──── rules_for(path) snapshot   │
    │                  └───────────────┘              │                   │
    │                                                 │                   │
    │   ┌──────────────┐    ┌────────────┐    ┌───────┴────────────────┐  │
    │   │ SocketServer │───►│ Connection │───►│ middleware + Dispatcher│  │
    │   │ accept loop  │    │ (thread)   │    │ (request thread)       │  │
    │   └──────────────┘    └────────────┘    └────────────────────────┘  │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
REQUEST LIFECYCLE
=============================================================================

    1. ACCEPT       SocketServer hands the socket to a fresh thread
    2. TLS          HTTPS servers run the handshake in that thread
    3. READ         Connection buffers one complete request
    4. PARSE        RequestParser → HTTPRequest
    5. SNAPSHOT     registry.rules_for(path) → request.context["rules"]
    6. PIPELINE     access log → basic auth → capture → route | static
    7. SEND         response bytes (headers only for HEAD)
    8. KEEP-ALIVE   loop for the next request, or close

Step 5 is what makes reset() atomic for requests: the whole pipeline sees
one consistent view of routes, auth, CSP and gzip.

=============================================================================
USAGE
=============================================================================

    with Server.create_http() as server:
        server.set_route("/api", lambda request: text_response(200, "ok"))
        waiter = server.future_request("/empty.html")

        browser.goto(server.empty_page)

        captured = waiter.result(timeout=5)
        assert captured.method == "GET"

=============================================================================
"""

import logging
import ssl
from concurrent.futures import Future
from http import HTTPStatus
from typing import Optional

from .config import ServerConfig
from .core import Connection, ConnectionState, SocketServer
from .handlers import Dispatcher, StaticResourceHandler, static_path
from .http.request import HTTPParseError, RequestParser
from .http.response import error_response, internal_error
from .middleware import (
    AccessLogMiddleware,
    BasicAuthMiddleware,
    MiddlewarePipeline,
    NextHandler,
    RequestCaptureMiddleware,
)
from .registry import RouteHandler, RouteRegistry
from .tls import create_server_context

logger = logging.getLogger(__name__)


class Server:
    """
    Embeddable test HTTP(S) server.

    The constructor binds and starts serving before it returns, so the
    port and every derived URL are usable right away.

    Attributes:
        port: Bound port (the OS-assigned one when asked for port 0).
        scheme: "http" or "https".
        prefix: scheme://localhost:port
        cross_process_prefix: scheme://127.0.0.1:port, a different origin
            that reaches the same server.
        empty_page: prefix + "/empty.html"
        registry: Route, auth, CSP, gzip and subscription tables.
        static: Fixture resolver used when no route override matches.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        ssl_context: Optional[ssl.SSLContext] = None,
    ):
        self.config = config or ServerConfig()
        self.config.validate()
        self._setup_logging()

        # ─────────────────────────────────────────────────────────────────
        # APPLICATION COMPONENTS
        # ─────────────────────────────────────────────────────────────────
        self.registry = RouteRegistry()
        self.static = StaticResourceHandler(self.config.resource_dir)
        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._handler = self._create_handler()

        # ─────────────────────────────────────────────────────────────────
        # NETWORK
        # ─────────────────────────────────────────────────────────────────
        self._ssl_context = ssl_context
        self.scheme = "https" if ssl_context is not None else "http"
        self._socket_server = SocketServer(self.config, name=f"{self.scheme}-fixtureserver")

        self.port = self._socket_server.bind()
        self.prefix = f"{self.scheme}://localhost:{self.port}"
        self.cross_process_prefix = f"{self.scheme}://127.0.0.1:{self.port}"
        self.empty_page = f"{self.prefix}/empty.html"

        self._socket_server.start(self._process_connection)

    # =========================================================================
    # CONSTRUCTION
    # =========================================================================

    @classmethod
    def create_http(cls, port: int = 0, config: Optional[ServerConfig] = None) -> "Server":
        """Start a plain HTTP server on localhost:port."""
        return cls((config or ServerConfig()).with_port(port))

    @classmethod
    def create_https(
        cls,
        port: int = 0,
        client_auth: bool = False,
        config: Optional[ServerConfig] = None,
    ) -> "Server":
        """
        Start an HTTPS server on localhost:port.

        Args:
            client_auth: Require a client certificate signed by the
                configured client CA (mutual TLS).

        Raises:
            TLSConfigurationError: The SSL context could not be built.
        """
        config = (config or ServerConfig()).with_port(port)
        context = create_server_context(
            certfile=config.certfile,
            keyfile=config.keyfile,
            password=config.key_password,
            client_auth=client_auth,
            client_ca=config.client_ca,
        )
        return cls(config, ssl_context=context)

    def _create_handler(self) -> NextHandler:
        """Build the dispatch pipeline: middleware wrapping the dispatcher."""
        pipeline = MiddlewarePipeline()
        pipeline.add(AccessLogMiddleware(log_format=self.config.log_format))
        pipeline.add(BasicAuthMiddleware())
        pipeline.add(RequestCaptureMiddleware(self.registry))
        return pipeline.wrap(Dispatcher(self.static).handle)

    def _setup_logging(self) -> None:
        """
        Apply config.log_level to the "fixtureserver" logger tree.

        Handlers and formatting belong to the host test process, so there
        is no basicConfig() here.
        """
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.getLogger("fixtureserver").setLevel(level)

    # =========================================================================
    # CONTROL SURFACE
    # =========================================================================

    def set_route(self, path: str, handler: RouteHandler) -> None:
        self.registry.set_route(path, handler)

    def set_redirect(self, from_path: str, to: str) -> None:
        self.registry.set_redirect(from_path, to)

    def unset_route(self, path: str) -> None:
        self.registry.unset_route(path)

    def set_auth(self, path: str, username: str, password: str) -> None:
        self.registry.set_auth(path, username, password)

    def set_csp(self, path: str, value: str) -> None:
        self.registry.set_csp(path, value)

    def enable_gzip(self, path: str) -> None:
        self.registry.enable_gzip(path)

    def future_request(self, path: str) -> Future:
        """Future resolved with a CapturedRequest for the next request to path."""
        return self.registry.future_request(path)

    def reset(self) -> None:
        """Drop every route, credential, CSP, gzip path and pending waiter."""
        self.registry.reset()

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._socket_server.is_running

    def stop(self) -> None:
        """
        Stop serving.

        Closes the listener and interrupts connections in flight. Never
        waits on route handlers. Pending future_request() waiters are
        cancelled.
        """
        self._socket_server.shutdown()
        self.registry.reset()
        logger.info(f"Server stopped: {self.prefix}")

    def __enter__(self) -> "Server":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.prefix}>"

    # =========================================================================
    # REQUEST HANDLING
    # =========================================================================

    def _process_connection(self, conn: Connection) -> None:
        """
        Serve one connection (runs in its own thread).

        =====================================================================
        CONNECTION PROCESSING LOOP
        =====================================================================

        1. TLS handshake (HTTPS only)
        2. Read and parse a request
        3. Attach the PathRules snapshot, run the pipeline
        4. Send the response
        5. Keep-alive: repeat from 2, otherwise close

        A handler returning None drops the connection without a response.

        =====================================================================
        """
        with conn:
            if self._ssl_context is not None:
                try:
                    conn.start_tls(self._ssl_context)
                except (ssl.SSLError, OSError) as e:
                    logger.debug(f"[{conn.id}] TLS handshake failed: {e}")
                    return

            while self._socket_server.is_running:
                try:
                    # ─────────────────────────────────────────────────────
                    # READ REQUEST
                    # ─────────────────────────────────────────────────────
                    raw_request = conn.read_request()
                    if raw_request is None:
                        break

                    # ─────────────────────────────────────────────────────
                    # PARSE REQUEST
                    # ─────────────────────────────────────────────────────
                    try:
                        request = self._parser.parse(raw_request, conn.address)
                    except HTTPParseError as e:
                        self._send_error(conn, e.status_code, str(e))
                        break

                    request.peer_certificate = conn.peer_certificate
                    request.context["rules"] = self.registry.rules_for(
                        request.path, static_path(request.path)
                    )

                    # ─────────────────────────────────────────────────────
                    # PROCESS REQUEST (middleware + dispatcher)
                    # ─────────────────────────────────────────────────────
                    conn.state = ConnectionState.PROCESSING
                    try:
                        response = self._handler(request)
                    except Exception as e:
                        logger.exception(f"[{conn.id}] Handler error for {request.path}: {e}")
                        response = internal_error(f"Exception: {e}")

                    if response is None:
                        logger.debug(f"[{conn.id}] Dropping connection for {request.path}")
                        conn.abort()
                        return

                    # ─────────────────────────────────────────────────────
                    # CONNECTION HEADERS
                    # ─────────────────────────────────────────────────────
                    keep_alive = (
                        request.is_keep_alive
                        and self.config.keep_alive
                        and response.headers.get("connection", "").lower() != "close"
                    )
                    if keep_alive:
                        response.headers.setdefault("Connection", "keep-alive")
                        response.headers.setdefault(
                            "Keep-Alive", f"timeout={int(self.config.keep_alive_timeout)}"
                        )
                    else:
                        response.headers["Connection"] = "close"

                    # ─────────────────────────────────────────────────────
                    # SEND RESPONSE
                    # ─────────────────────────────────────────────────────
                    response_bytes = response.to_bytes(
                        self.config.server_name,
                        include_body=request.method != "HEAD",
                    )
                    if not conn.send(response_bytes):
                        break

                    if not keep_alive:
                        break
                    conn.state = ConnectionState.KEEP_ALIVE

                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                    break

                except ValueError as e:
                    # Oversized request from Connection.read_request()
                    self._send_error(conn, HTTPStatus.REQUEST_ENTITY_TOO_LARGE, str(e))
                    break

    def _send_error(self, conn: Connection, status: int, message: str) -> None:
        """Answer a request that never reached the pipeline."""
        response = error_response(status, message)
        conn.send(response.to_bytes(self.config.server_name))

