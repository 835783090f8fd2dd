"""
=============================================================================
MIDDLEWARE
=============================================================================

Cross-cutting steps of the dispatch engine, in pipeline order:

    AccessLogMiddleware       one access log line per request
    BasicAuthMiddleware       401 for protected paths without credentials
    RequestCaptureMiddleware  resolves future_request() waiters

=============================================================================
"""

from .base import Middleware, MiddlewarePipeline, NextHandler
from .logging import AccessLogMiddleware, RequestLog
from .auth import BasicAuthMiddleware
from .capture import RequestCaptureMiddleware

__all__ = [
    # Base
    "Middleware",
    "MiddlewarePipeline",
    "NextHandler",

    # Built-in middleware
    "AccessLogMiddleware",       # Access log lines
    "RequestLog",
    "BasicAuthMiddleware",       # set_auth() enforcement
    "RequestCaptureMiddleware",  # future_request() fulfilment
]
