"""
=============================================================================
ROUTE REGISTRY & REQUEST SUBSCRIPTIONS
=============================================================================

All mutable per-path state of one server lives here, behind ONE lock:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  RouteRegistry                                    _lock (Lock)      │
    ├─────────────────────────────────────────────────────────────────────┤
    │  _routes       "/foo"        → handler(request) -> HTTPResponse     │
    │  _auths        "/secret"     → Credentials("user", "pass")          │
    │  _csp          "/empty.html" → "default-src 'self'"                 │
    │  _gzip         {"/simple.json", ...}                                │
    │  _subscribers  "/empty.html" → Future[CapturedRequest]              │
    └─────────────────────────────────────────────────────────────────────┘

Test threads write these tables while request threads read them. The
dispatcher never reads them piecemeal: it takes one PathRules snapshot
per request, so a reset() racing with a request is seen either entirely
before or entirely after.

=============================================================================
REQUEST SUBSCRIPTIONS
=============================================================================

future_request(path) lets a test block until the browser requests path:

    Test thread                         Request thread
    ───────────                         ──────────────
    f = server.future_request("/a")
      └── get-or-insert under lock
                                        GET /a
                                          └── pop "/a" under lock
                                          └── f.set_result(snapshot)
    f.result(timeout=5) → CapturedRequest

Popping under the lock makes fulfilment exactly-once: of two concurrent
requests only one finds the future. Completing it happens outside the
lock, so waiter callbacks may call back into the registry.

=============================================================================
"""

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Set

from .http.headers import Headers
from .http.request import HTTPRequest
from .http.response import HTTPResponse, redirect

logger = logging.getLogger(__name__)


# A route handler gets the request and returns the response to send.
# Returning None closes the connection without answering.
RouteHandler = Callable[[HTTPRequest], Optional[HTTPResponse]]


@dataclass(frozen=True)
class Credentials:
    """Basic-auth username and password for a protected path."""

    username: str
    password: str

    @property
    def token(self) -> str:
        """The decoded form a matching Authorization header carries."""
        return f"{self.username}:{self.password}"


@dataclass(frozen=True)
class PathRules:
    """
    Everything the registry knows about one request, read atomically.

    Attributes:
        handler:     Route override, or None for static fallback.
        credentials: Required Basic credentials, or None.
        csp:         Content-Security-Policy to inject, or None.
        gzip:        Whether the static response is gzip-encoded.
    """

    handler: Optional[RouteHandler] = None
    credentials: Optional[Credentials] = None
    csp: Optional[str] = None
    gzip: bool = False


@dataclass(frozen=True)
class CapturedRequest:
    """
    Snapshot of a request handed to a future_request() waiter.

    Headers are copied, so later changes to the live request are not seen.
    """

    url: str
    method: str
    headers: Headers
    post_body: bytes

    @classmethod
    def from_request(cls, request: HTTPRequest) -> "CapturedRequest":
        return cls(
            url=request.url or request.path,
            method=request.method,
            headers=request.headers.copy(),
            post_body=bytes(request.body),
        )


class RouteRegistry:
    """
    Server-owned tables of route overrides, auth, CSP, gzip and
    request subscriptions.

    Every public method is safe to call from any thread.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._routes: Dict[str, RouteHandler] = {}
        self._auths: Dict[str, Credentials] = {}
        self._csp: Dict[str, str] = {}
        self._gzip: Set[str] = set()
        self._subscribers: Dict[str, Future] = {}

    # =========================================================================
    # ROUTES
    # =========================================================================

    def set_route(self, path: str, handler: RouteHandler) -> None:
        """Install a handler for an exact path, replacing any previous one."""
        with self._lock:
            self._routes[path] = handler
        logger.debug(f"Route set: {path}")

    def set_redirect(self, from_path: str, to: str) -> None:
        """Answer requests for from_path with 302 and location: to."""
        self.set_route(from_path, lambda request: redirect(to))

    def unset_route(self, path: str) -> None:
        with self._lock:
            self._routes.pop(path, None)

    # =========================================================================
    # AUTH / CSP / GZIP
    # =========================================================================

    def set_auth(self, path: str, username: str, password: str) -> None:
        with self._lock:
            self._auths[path] = Credentials(username, password)

    def set_csp(self, path: str, value: str) -> None:
        with self._lock:
            self._csp[path] = value

    def enable_gzip(self, path: str) -> None:
        with self._lock:
            self._gzip.add(path)

    def rules_for(self, path: str, resource_path: Optional[str] = None) -> PathRules:
        """
        Snapshot the rules that apply to a request.

        Args:
            path: Request path; keys routes, auth and CSP.
            resource_path: Static fixture path the request maps to; keys
                gzip. Defaults to path.
        """
        with self._lock:
            return PathRules(
                handler=self._routes.get(path),
                credentials=self._auths.get(path),
                csp=self._csp.get(path),
                gzip=(resource_path or path) in self._gzip,
            )

    # =========================================================================
    # REQUEST SUBSCRIPTIONS
    # =========================================================================

    def future_request(self, path: str) -> Future:
        """
        Future resolved with the next request for path.

        A pending future for the same path is shared, so two callers
        waiting on one path see the same request.
        """
        with self._lock:
            future = self._subscribers.get(path)
            if future is None:
                future = Future()
                self._subscribers[path] = future
            return future

    def fulfill(self, request: HTTPRequest) -> bool:
        """
        Hand a request to the subscriber waiting on its path, if any.

        Returns:
            True if a subscriber was fulfilled.
        """
        with self._lock:
            future = self._subscribers.pop(request.path, None)

        if future is None:
            return False

        # A waiter may have cancelled while we were popping.
        if future.set_running_or_notify_cancel():
            future.set_result(CapturedRequest.from_request(request))
            logger.debug(f"Request subscriber fulfilled: {request.method} {request.path}")
            return True
        return False

    # =========================================================================
    # RESET
    # =========================================================================

    def reset(self) -> None:
        """
        Forget every route, credential, CSP, gzip path and subscriber.

        Pending subscriber futures are cancelled so waiters fail fast with
        CancelledError.
        """
        with self._lock:
            pending = list(self._subscribers.values())
            self._routes.clear()
            self._auths.clear()
            self._csp.clear()
            self._gzip.clear()
            self._subscribers.clear()

        for future in pending:
            future.cancel()
