"""
=============================================================================
ACCESS LOGGING
=============================================================================

One log line per request on the "fixtureserver.access" logger:

    127.0.0.1 - - [19/Oct/2026:12:00:00 +0000] "GET /empty.html" 200 0 0.41ms

The host test process decides where (and whether) these lines go:

    logging.getLogger("fixtureserver.access").setLevel(logging.WARNING)

Responses are never modified here; fixtures must reach the browser
byte-for-byte as the test configured them.

=============================================================================
"""

import json
import logging
import time
from dataclasses import asdict, dataclass
from typing import Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse

logger = logging.getLogger("fixtureserver.access")


@dataclass
class RequestLog:
    """Structured access log entry."""

    method: str
    url: str
    client_ip: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        entry = asdict(self)
        entry["duration_ms"] = round(self.duration_ms, 2)
        return entry

    def to_text(self) -> str:
        """Apache common log format plus the duration."""
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.url}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )


class AccessLogMiddleware(Middleware):
    """
    Request logging middleware. Goes first in the pipeline so it also
    sees requests rejected by auth.

    Args:
        log_format: "text" (Apache style) or "json".
        log_level: Level for successful requests.
    """

    def __init__(self, log_format: str = "text", log_level: int = logging.INFO):
        self.log_format = log_format
        self.log_level = log_level

    def __call__(self, request: HTTPRequest, next: NextHandler) -> Optional[HTTPResponse]:
        start_time = time.time()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                f"Request failed: {request.method} {request.url or request.path} "
                f"- {type(e).__name__}: {e} ({duration_ms:.2f}ms)"
            )
            raise

        duration_ms = (time.time() - start_time) * 1000

        if response is None:
            logger.log(self.log_level, f"{request.method} {request.path}: connection dropped by handler")
            return None

        entry = RequestLog(
            method=request.method,
            url=request.url or request.path,
            client_ip=request.client_address[0],
            status_code=int(response.status),
            content_length=len(response.body),
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(entry.to_dict()))
        else:
            logger.log(self.log_level, entry.to_text())

        return response
