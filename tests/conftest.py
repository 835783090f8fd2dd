"""
pytest configuration and fixtures.
"""

import http.client
import socket
import ssl
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Generator, Optional
from urllib.parse import urlsplit

import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fixtureserver import Server, ServerConfig, WebSocketTestServer


CERTS_DIR = Path(__file__).parent / "fixtures" / "certs"


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /empty.html?page=1&limit=10 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: text/html\r\n"
        b"X-Test: 1\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a form body."""
    body = b"name=John&email=john%40example.com"
    return (
        b"POST /submit HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/x-www-form-urlencoded\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def config() -> ServerConfig:
    """Test server configuration: any free port, quiet logs, short timeouts."""
    return ServerConfig(port=0, timeout=5.0, keep_alive_timeout=2.0, log_level="WARNING")


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def certs_dir() -> Path:
    """Client certificates: client.crt (trusted, CN=Alice), self-signed.crt."""
    return CERTS_DIR


# =============================================================================
# SERVERS
# =============================================================================

@pytest.fixture
def server(config: ServerConfig) -> Generator[Server, None, None]:
    """Running HTTP fixture server."""
    srv = Server.create_http(config=config)
    yield srv
    srv.stop()


@pytest.fixture
def https_server(config: ServerConfig) -> Generator[Server, None, None]:
    """Running HTTPS fixture server without client authentication."""
    srv = Server.create_https(config=config)
    yield srv
    srv.stop()


@pytest.fixture
def ws_server(config: ServerConfig) -> Generator[WebSocketTestServer, None, None]:
    """Running WebSocket test server."""
    srv = WebSocketTestServer.create(config=config)
    yield srv
    srv.close()


# =============================================================================
# CLIENT HELPERS
# =============================================================================

@dataclass
class FetchResult:
    """What a client saw: status, headers and the undecoded body."""

    status: int
    reason: str
    headers: http.client.HTTPMessage
    body: bytes

    @property
    def text(self) -> str:
        return self.body.decode("utf-8")


def insecure_context(certfile: Optional[Path] = None, keyfile: Optional[Path] = None) -> ssl.SSLContext:
    """Client context that accepts the self-signed server certificate."""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    if certfile is not None:
        context.load_cert_chain(str(certfile), str(keyfile))
    return context


def _fetch(
    url: str,
    method: str = "GET",
    headers: Optional[Dict[str, str]] = None,
    body: Optional[bytes] = None,
    context: Optional[ssl.SSLContext] = None,
    timeout: float = 5.0,
) -> FetchResult:
    parts = urlsplit(url)
    if parts.scheme == "https":
        conn = http.client.HTTPSConnection(
            parts.hostname, parts.port, timeout=timeout, context=context or insecure_context()
        )
    else:
        conn = http.client.HTTPConnection(parts.hostname, parts.port, timeout=timeout)

    target = parts.path or "/"
    if parts.query:
        target += "?" + parts.query

    try:
        conn.request(method, target, body=body, headers=headers or {})
        response = conn.getresponse()
        return FetchResult(response.status, response.reason, response.headers, response.read())
    finally:
        conn.close()


@pytest.fixture
def fetch() -> Callable[..., FetchResult]:
    """
    One request over a fresh connection.

        result = fetch(server.prefix + "/simple.json", headers={"X-Test": "1"})
    """
    return _fetch


@pytest.fixture
def client_context() -> Callable[..., ssl.SSLContext]:
    """Factory for client TLS contexts, optionally with a client certificate."""
    return insecure_context


@pytest.fixture
def raw_request() -> Callable[..., bytes]:
    """
    Send raw bytes to a port and read until the server closes.

    For requests http.client refuses to produce.
    """
    def send(port: int, data: bytes, timeout: float = 5.0) -> bytes:
        with socket.create_connection(("127.0.0.1", port), timeout=timeout) as sock:
            sock.sendall(data)
            chunks = []
            while True:
                chunk = sock.recv(65536)
                if not chunk:
                    break
                chunks.append(chunk)
        return b"".join(chunks)
    return send
