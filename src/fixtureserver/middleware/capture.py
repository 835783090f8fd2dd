"""
Request capture: hands each request to the future_request() subscriber
waiting on its path, then lets the request continue untouched.

Runs after auth, so a request rejected with 401 never resolves a waiter.
"""

from typing import Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse
from ..registry import RouteRegistry


class RequestCaptureMiddleware(Middleware):
    """Fulfils request subscriptions registered on the registry."""

    def __init__(self, registry: RouteRegistry):
        self.registry = registry

    def __call__(self, request: HTTPRequest, next: NextHandler) -> Optional[HTTPResponse]:
        self.registry.fulfill(request)
        return next(request)
