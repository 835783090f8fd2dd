"""
=============================================================================
FIXTURESERVER - Embeddable HTTP(S) Fixture Server for Browser Tests
=============================================================================

An in-process HTTP/1.1 server that serves static fixture pages and lets a
test suite reconfigure and observe it between (and during) tests.

=============================================================================
PROJECT OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                     │
    │   1. STATIC FIXTURES                                                │
    │      - bundled assets, "/" → "/index.html"                          │
    │      - Content-Type from the file extension                         │
    │                                                                     │
    │   2. RUNTIME CONFIGURATION                                          │
    │      - route overrides and redirects                                │
    │      - Basic auth, CSP header and gzip per path                     │
    │      - reset() back to a clean server between tests                 │
    │                                                                     │
    │   3. INTROSPECTION                                                  │
    │      - future_request(path): block until the browser asks for path  │
    │                                                                     │
    │   4. TLS                                                            │
    │      - HTTPS with a bundled localhost certificate                   │
    │      - optional mutual TLS, client certificate reporting server     │
    │                                                                     │
    │   5. WEBSOCKETS                                                     │
    │      - observable RFC 6455 endpoint for WebSocket tests             │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    fixtureserver/
    ├── __init__.py            # This file - package exports
    ├── server.py              # Server: control surface + connection loop
    ├── registry.py            # Route/auth/CSP/gzip tables, future_request
    ├── config.py              # ServerConfig dataclass
    ├── tls.py                 # SSLContext from the bundled keys
    ├── client_certificate.py  # ClientCertificateServer
    ├── lifecycle.py           # One server per test class, free ports
    ├── core/                  # Sockets, connections, threads
    ├── http/                  # Headers, request, response, MIME, multipart
    ├── middleware/            # Access log, Basic auth, request capture
    ├── handlers/              # Dispatcher, static fixtures
    ├── websocket/             # WebSocket test server
    ├── assets/                # Bundled fixture files
    └── keys/                  # Test certificates and key

=============================================================================
QUICK START
=============================================================================

    from fixtureserver import Server
    from fixtureserver.http import text_response

    with Server.create_http() as server:
        server.set_route("/api", lambda request: text_response(200, "hi"))
        server.set_auth("/empty.html", "user", "pass")

        waiter = server.future_request("/api")
        page.goto(server.prefix + "/api")
        assert waiter.result(timeout=5).method == "GET"

        server.reset()

=============================================================================
"""

__version__ = "1.0.0"

from .server import Server
from .config import ServerConfig
from .registry import CapturedRequest, RouteHandler
from .tls import TLSConfigurationError
from .client_certificate import ClientCertificateServer
from .websocket import WebSocketTestServer
from .lifecycle import ServerLifecycle, next_free_port

__all__ = [
    "Server",
    "ServerConfig",
    "CapturedRequest",
    "RouteHandler",
    "TLSConfigurationError",
    "ClientCertificateServer",
    "WebSocketTestServer",
    "ServerLifecycle",
    "next_free_port",
    "__version__",
]
