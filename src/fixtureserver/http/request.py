"""
=============================================================================
HTTP REQUEST PARSING
=============================================================================

Turns the raw bytes read from a connection into an HTTPRequest.

=============================================================================
HTTP/1.1 REQUEST FORMAT
=============================================================================

    ┌──────────────────────────────────────────────────────────────────────┐
    │ POST /upload?id=7 HTTP/1.1\r\n                   ← Request line      │
    │ Host: localhost:8907\r\n                         ← Headers           │
    │ Content-Type: multipart/form-data; boundary=X\r\n                    │
    │ Content-Length: 123\r\n                                              │
    │ \r\n                                             ← Blank line        │
    │ --X\r\n ...                                      ← Body              │
    └──────────────────────────────────────────────────────────────────────┘

The request-target is kept twice:

    url   = "/upload?id=7"     raw target, what the client actually sent
    path  = "/upload"          percent-decoded path, the key for every
                               per-path table (routes, auth, CSP, gzip,
                               request subscriptions)

=============================================================================
LENIENCY
=============================================================================

This server exists to be poked by browsers under test, so the parser
accepts any token as a method (tests send custom verbs) and skips header
lines it cannot understand instead of failing the request. It still
rejects requests it cannot frame at all.

=============================================================================
BODY FRAMING
=============================================================================

    Content-Length: 5           body is the next 5 bytes

    Transfer-Encoding: chunked  body is a series of chunks:

        5\r\n                   ← chunk size (hex), optional ;extensions
        hello\r\n               ← chunk data
        0\r\n                   ← last chunk
        \r\n                    ← end of (optional) trailers

Chunked wins over Content-Length when a client sends both. The parsed
body is always the de-chunked bytes.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import parse_qs, unquote, urlsplit
import re

from .headers import Headers


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the status code the server should answer with:

        400 Bad Request                 - malformed syntax
        413 Payload Too Large           - request exceeds size limit
        505 HTTP Version Not Supported  - unknown HTTP version
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method:           Request method exactly as sent ("GET", "POST", ...)
        url:              Raw request-target, including the query string
        path:             Percent-decoded path without query or fragment
        version:          "HTTP/1.1" or "HTTP/1.0"
        headers:          Case-insensitive multi-map of request headers
        query_params:     Parsed query string, name → list of values
        body:             Raw body bytes (Content-Length framed)
        client_address:   (ip, port) of the peer
        peer_certificate: Decoded client certificate on a verified TLS
                          connection, otherwise None
        context:          Per-request values attached by the server (the
                          PathRules snapshot lives under "rules")
    """

    method: str
    path: str
    url: str = ""
    version: str = "HTTP/1.1"
    headers: Headers = field(default_factory=Headers)
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    body: bytes = b""
    client_address: tuple = ("", 0)
    peer_certificate: Optional[Dict[str, Any]] = field(default=None, repr=False)
    context: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def content_type(self) -> Optional[str]:
        """Content-Type without parameters, lowercased."""
        ct = self.headers.get("content-type", "")
        return ct.split(";")[0].strip().lower() or None

    @property
    def content_length(self) -> int:
        try:
            return int(self.headers.get("content-length", "0"))
        except ValueError:
            return 0

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the connection stays open after this request.

        HTTP/1.1 keeps alive unless "Connection: close".
        HTTP/1.0 closes unless "Connection: keep-alive".
        """
        connection = self.headers.get("connection", "").lower()
        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    @property
    def is_websocket_upgrade(self) -> bool:
        return (
            self.headers.get("upgrade", "").lower() == "websocket"
            and "upgrade" in self.headers.get("connection", "").lower()
        )

    def get_header(self, name: str, default: str = "") -> str:
        """First value of a header (case-insensitive), or ``default``."""
        return self.headers.get(name, default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        values = self.query_params.get(name, [])
        return values[0] if values else default


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    ==========================================================================
    PARSER STEPS
    ==========================================================================

        1. Size check                 too large?      → 413
        2. Split head / body          no \\r\\n\\r\\n?    → 400
        3. Request line               METHOD SP TARGET SP VERSION
        4. Headers                    "Name: value", folded lines joined
        5. Body                       exactly Content-Length bytes

    ==========================================================================
    """

    # RFC 7230 token characters; tests use verbs like "CUSTOM"
    REQUEST_LINE_PATTERN = re.compile(
        r"^([!#$%&'*+.^_`|~0-9A-Za-z-]+) ([^ ]+) (HTTP/\d\.\d)$"
    )
    HEADER_PATTERN = re.compile(r"^([^:\s][^:]*):\s*(.*)$")

    def __init__(self, max_request_size: int = 10 * 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(self, data: bytes, client_address: tuple = ("", 0)) -> HTTPRequest:
        """
        Parse raw request bytes.

        Args:
            data: One complete request as framed by Connection.read_request().
            client_address: Peer (ip, port), kept for logging.

        Returns:
            Parsed HTTPRequest.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(f"Request too large: {len(data)} bytes", status_code=413)

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        # Header bytes are ISO-8859-1 on the wire; it never fails to decode.
        head = data[:header_end].decode("iso-8859-1")
        body = data[header_end + 4:]

        lines = head.split("\r\n")
        method, url, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        if is_chunked(headers.get("transfer-encoding", "")):
            decoded = decode_chunked(body)
            if decoded is None:
                raise HTTPParseError("Incomplete chunked body")
            body = decoded[0]
        else:
            try:
                content_length = int(headers.get("content-length", "0"))
            except ValueError:
                raise HTTPParseError("Invalid Content-Length header")
            if len(body) < content_length:
                raise HTTPParseError(
                    f"Incomplete body: expected {content_length} bytes, got {len(body)}"
                )
            body = body[:content_length]

        return HTTPRequest(
            method=method,
            path=path,
            url=url,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body,
            client_address=client_address,
        )

    def _parse_request_line(self, line: str):
        """
        Parse "METHOD SP REQUEST-TARGET SP HTTP-VERSION".

        Returns:
            Tuple of (method, url, path, query_params, version).
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, url, version = match.groups()

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(f"Unsupported HTTP version: {version}", status_code=505)

        parsed = urlsplit(url)
        path = unquote(parsed.path) or "/"
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        # Path traversal
        if ".." in path.split("/"):
            raise HTTPParseError("Invalid path: contains ..", status_code=400)

        return method, url, path, query_params, version

    def _parse_headers(self, lines: List[str]) -> Headers:
        """
        Parse header lines into a Headers multi-map.

        Repeated headers stay separate values. Obsolete line folding
        (continuation lines starting with whitespace) is joined onto the
        previous header.
        """
        pairs: List[List[str]] = []

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if pairs:
                    pairs[-1][1] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue  # lenient: skip garbage

            name, value = match.groups()
            pairs.append([name.strip(), value.strip()])

        return Headers((name, value) for name, value in pairs)


def parse_request(
    data: bytes,
    client_address: tuple = ("", 0),
    max_size: int = 10 * 1024 * 1024,
) -> HTTPRequest:
    """Parse a request with a throwaway RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)


# =============================================================================
# CHUNKED TRANSFER CODING
# =============================================================================

CHUNK_SIZE_PATTERN = re.compile(rb"[0-9A-Fa-f]+")


def is_chunked(transfer_encoding: str) -> bool:
    """Whether a Transfer-Encoding value ends in the chunked coding."""
    codings = [c.strip().lower() for c in transfer_encoding.split(",")]
    return codings[-1] == "chunked"


def decode_chunked(data: bytes) -> Optional[Tuple[bytes, int]]:
    """
    Decode a chunked body from the start of data.

    Returns:
        (body, consumed) once the last chunk and trailers are complete,
        where consumed counts the framed bytes; None if more bytes are
        needed.

    Raises:
        HTTPParseError: Bad chunk size or missing CRLF after chunk data.
    """
    chunks = []
    pos = 0

    while True:
        line_end = data.find(b"\r\n", pos)
        if line_end == -1:
            return None

        size_field = data[pos:line_end].split(b";", 1)[0].strip()
        if not CHUNK_SIZE_PATTERN.fullmatch(size_field):
            raise HTTPParseError(f"Invalid chunk size: {size_field[:16]!r}")
        size = int(size_field, 16)
        pos = line_end + 2

        if size == 0:
            # Trailers, ended by an empty line
            while True:
                line_end = data.find(b"\r\n", pos)
                if line_end == -1:
                    return None
                line = data[pos:line_end]
                pos = line_end + 2
                if not line:
                    return b"".join(chunks), pos

        if len(data) < pos + size + 2:
            return None
        if data[pos + size:pos + size + 2] != b"\r\n":
            raise HTTPParseError("Chunk data not followed by CRLF")

        chunks.append(data[pos:pos + size])
        pos += size + 2
