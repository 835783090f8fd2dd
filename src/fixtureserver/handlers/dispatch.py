"""
Final handler of the dispatch pipeline: a registered route override if
the path has one, the static fixture otherwise.
"""

import logging
from typing import Optional

from .static import StaticResourceHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse
from ..registry import PathRules

logger = logging.getLogger(__name__)


class Dispatcher:
    """
    Route override or static fallback.

    Route handlers own the whole response; static fixtures get CSP, gzip
    and MIME handling from StaticResourceHandler.
    """

    def __init__(self, static: StaticResourceHandler):
        self.static = static

    def handle(self, request: HTTPRequest) -> Optional[HTTPResponse]:
        rules: PathRules = request.context.get("rules") or PathRules()

        if rules.handler is not None:
            logger.debug(f"Route override for {request.path}")
            return rules.handler(request)

        return self.static.serve(request.path, csp=rules.csp, gzip_body=rules.gzip)
