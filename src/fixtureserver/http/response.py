"""
=============================================================================
HTTP RESPONSE
=============================================================================

HTTPResponse is what route handlers return and what the dispatcher
serializes back onto the socket.

=============================================================================
HTTP/1.1 RESPONSE FORMAT
=============================================================================

    ┌──────────────────────────────────────────────────────────────────────┐
    │ HTTP/1.1 302 Found\r\n                          ← Status line        │
    │ location: /empty.html\r\n                       ← Headers            │
    │ Content-Length: 0\r\n                           ← Auto-added         │
    │ Date: Mon, 19 Oct 2026 12:00:00 GMT\r\n         ← Auto-added         │
    │ Server: FixtureServer/1.0\r\n                   ← Auto-added         │
    │ \r\n                                            ← Blank line         │
    │                                                 ← (empty body)       │
    └──────────────────────────────────────────────────────────────────────┘

Status codes are plain ints so that handlers can answer with anything a
test needs (including codes http.HTTPStatus does not know). The reason
phrase is looked up when the status line is written.

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Dict, Optional, Union
import json

from .headers import Headers
from .mime_types import get_content_type


DEFAULT_SERVER_NAME = "FixtureServer/1.0"


def reason_phrase(status: int) -> str:
    """Standard reason phrase for a status code, "" if unknown."""
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return ""


@dataclass
class HTTPResponse:
    """
    An HTTP response to be sent to the client.

    Use ResponseBuilder for a more convenient way to construct responses.
    """

    status: int = HTTPStatus.OK
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        return f"{self.version} {int(self.status)} {reason_phrase(self.status)}".rstrip()

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Replace a header. Returns self for chaining."""
        self.headers.set(name, value)
        return self

    def add_header(self, name: str, value: str) -> "HTTPResponse":
        """Append a header value, keeping existing ones."""
        self.headers.add(name, value)
        return self

    def set_body(self, body: Union[str, bytes]) -> "HTTPResponse":
        self.body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME, include_body: bool = True) -> bytes:
        """
        Serialize the response for socket.sendall().

        Content-Length, Date and Server are added unless the handler set
        them. With include_body=False (HEAD requests) the headers still
        describe the body that would have been sent.
        """
        headers = self.headers.copy()

        if "Content-Length" not in headers:
            headers.add("Content-Length", str(len(self.body)))
        if "Date" not in headers:
            headers.add("Date", format_http_date(datetime.now(timezone.utc)))
        if "Server" not in headers:
            headers.add("Server", server_name)

        lines = [self.status_line]
        for name, value in headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        head = "\r\n".join(lines).encode("iso-8859-1", errors="replace") + b"\r\n"
        return head + self.body if include_body else head


class ResponseBuilder:
    """
    Fluent builder for HTTPResponse.

        response = (ResponseBuilder()
            .status(200)
            .header("Set-Cookie", "a=1")
            .header("Set-Cookie", "b=2")
            .text("hello")
            .build())

    header() appends, so repeated calls produce repeated headers.
    """

    def __init__(self):
        self._status: int = HTTPStatus.OK
        self._headers = Headers()
        self._body: bytes = b""

    def status(self, status: int) -> "ResponseBuilder":
        self._status = status
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers.add(name, value)
        return self

    def headers(self, headers: Dict[str, str]) -> "ResponseBuilder":
        for name, value in headers.items():
            self._headers.add(name, value)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        self._headers.set("Content-Type", content_type)
        return self

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = "text/plain") -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        return self.content_type(content_type)

    def html(self, html: str) -> "ResponseBuilder":
        self._body = html.encode("utf-8")
        return self.content_type("text/html")

    def json(self, data: Any) -> "ResponseBuilder":
        self._body = json.dumps(data, ensure_ascii=False).encode("utf-8")
        return self.content_type("application/json")

    def file(self, content: bytes, filename: str) -> "ResponseBuilder":
        """Body from file content, Content-Type from the file extension."""
        self._body = content
        return self.content_type(get_content_type(filename))

    def redirect(self, location: str, status: int = HTTPStatus.FOUND) -> "ResponseBuilder":
        """Redirect with an empty body. The header name is lowercase on the wire."""
        self._status = status
        self._headers.set("location", location)
        self._body = b""
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(status=self._status, headers=self._headers.copy(), body=self._body)


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231).

    Example: Wed, 01 Jan 2026 12:00:00 GMT
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE CONSTRUCTORS
# =============================================================================

def text_response(status: int, text: str, content_type: str = "text/plain") -> HTTPResponse:
    """Plain-text response with an arbitrary status."""
    return ResponseBuilder().status(status).text(text, content_type).build()


def not_found(path: str) -> HTTPResponse:
    """404 for a fixture that does not exist."""
    return text_response(HTTPStatus.NOT_FOUND, f"File not found: {path}")


def unauthorized(realm: str = "Secure Area") -> HTTPResponse:
    """401 asking the browser for Basic credentials."""
    return (ResponseBuilder()
        .status(HTTPStatus.UNAUTHORIZED)
        .header("WWW-Authenticate", f'Basic realm="{realm}"')
        .text("HTTP Error 401 Unauthorized: Access is denied")
        .build())


def redirect(location: str) -> HTTPResponse:
    """302 Found with a location header and no body."""
    return ResponseBuilder().redirect(location).build()


def internal_error(message: Optional[str] = None) -> HTTPResponse:
    return text_response(HTTPStatus.INTERNAL_SERVER_ERROR, message or "Internal Server Error")


def error_response(status: int, message: str) -> HTTPResponse:
    """Error answer sent before a request reaches the dispatcher."""
    response = text_response(status, message)
    response.set_header("Connection", "close")
    return response
