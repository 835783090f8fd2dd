"""
=============================================================================
MIDDLEWARE BASE
=============================================================================

The dispatch engine is a chain of middleware around a final handler:

    ┌─────────────────────────────────────────────────────────────────┐
    │  AccessLogMiddleware                                            │
    │  ┌───────────────────────────────────────────────────────────┐  │
    │  │  BasicAuthMiddleware        401 short-circuit             │  │
    │  │  ┌─────────────────────────────────────────────────────┐  │  │
    │  │  │  RequestCaptureMiddleware   fulfil future_request() │  │  │
    │  │  │  ┌───────────────────────────────────────────────┐  │  │  │
    │  │  │  │  Dispatcher                                   │  │  │  │
    │  │  │  │  route override  OR  static fixture           │  │  │  │
    │  │  │  └───────────────────────────────────────────────┘  │  │  │
    │  │  └─────────────────────────────────────────────────────┘  │  │
    │  └───────────────────────────────────────────────────────────┘  │
    └─────────────────────────────────────────────────────────────────┘

Request flows inward (first added runs first), the response flows back
out. A middleware that returns without calling next() short-circuits
everything inside it.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List, Optional
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse

logger = logging.getLogger(__name__)


# Next middleware or the final handler. None means "drop the connection".
NextHandler = Callable[[HTTPRequest], Optional[HTTPResponse]]


class Middleware(ABC):
    """
    Abstract base class for middleware.

        class MyMiddleware(Middleware):
            def __call__(self, request, next):
                if not self.is_allowed(request):
                    return text_response(403, "nope")   # short-circuit
                response = next(request)
                return response
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> Optional[HTTPResponse]:
        """
        Process the request.

        Args:
            request: The incoming HTTP request
            next: The next handler in the chain

        Returns:
            HTTP response, or None if the connection should be dropped
        """

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """
    Chains middleware together with a final handler.

        pipeline = MiddlewarePipeline()
        pipeline.add(AccessLogMiddleware()).add(BasicAuthMiddleware())
        handler = pipeline.wrap(dispatcher.handle)
        response = handler(request)
    """

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        """Append middleware; first added is outermost."""
        self._middleware.append(middleware)
        logger.debug(f"Added middleware: {middleware.name}")
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Wrap a final handler with every middleware in the pipeline.

        Built inside out: the last middleware wraps the handler, the
        first one wraps everything.
        """
        wrapped = handler
        for middleware in reversed(self._middleware):
            wrapped = self._bind(middleware, wrapped)
        return wrapped

    @staticmethod
    def _bind(middleware: Middleware, next_handler: NextHandler) -> NextHandler:
        def handler(request: HTTPRequest) -> Optional[HTTPResponse]:
            return middleware(request, next_handler)
        return handler

    def __len__(self) -> int:
        return len(self._middleware)
