"""
=============================================================================
HTTP MESSAGES
=============================================================================

Everything between raw socket bytes and the dispatcher:

    ┌─────────────────────────────────────────────────────────────────────┐
    │ headers.py     Case-insensitive multi-valued header map             │
    │ request.py     bytes → HTTPRequest                                  │
    │ response.py    HTTPResponse / ResponseBuilder → bytes               │
    │ mime_types.py  file extension → Content-Type                        │
    │ multipart.py   multipart/form-data body → [MultipartField, ...]     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .headers import Headers
from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    text_response,   # any status, text/plain
    not_found,       # 404 File not found
    unauthorized,    # 401 + WWW-Authenticate
    redirect,        # 302 + location
    internal_error,  # 500
)
from .mime_types import MIME_TYPES, DEFAULT_MIME_TYPE, get_content_type
from .multipart import MultipartFormData, MultipartField, MultipartParseError

__all__ = [
    # Headers
    "Headers",

    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",

    # Response building
    "HTTPResponse",
    "ResponseBuilder",
    "text_response",
    "not_found",
    "unauthorized",
    "redirect",
    "internal_error",

    # MIME types
    "MIME_TYPES",
    "DEFAULT_MIME_TYPE",
    "get_content_type",

    # Multipart
    "MultipartFormData",
    "MultipartField",
    "MultipartParseError",
]
