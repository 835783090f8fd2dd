"""
=============================================================================
BASIC AUTHENTICATION
=============================================================================

Protects paths registered with Server.set_auth(path, user, password).

    Browser                                   Server
       │  GET /protected                        │
       │ ─────────────────────────────────────► │  no Authorization header
       │                                        │
       │  401 Unauthorized                      │
       │  WWW-Authenticate: Basic realm="Secure Area"
       │ ◄───────────────────────────────────── │
       │                                        │
       │  GET /protected                        │
       │  Authorization: Basic dXNlcjpwYXNz     │  base64("user:pass")
       │ ─────────────────────────────────────► │
       │                                        │
       │  200 OK                                │
       │ ◄───────────────────────────────────── │

Only the FIRST Authorization header counts. Its value must be exactly two
space-separated words, and the second must decode to "user:pass". The
scheme word itself is not checked.

=============================================================================
"""

import base64
import binascii
import logging
from typing import Optional

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, unauthorized
from ..registry import Credentials, PathRules

logger = logging.getLogger(__name__)


class BasicAuthMiddleware(Middleware):
    """
    Rejects requests to protected paths that lack matching credentials.

    Reads the credentials from the PathRules snapshot the server attaches
    to each request.
    """

    def __init__(self, realm: str = "Secure Area"):
        self.realm = realm

    def __call__(self, request: HTTPRequest, next: NextHandler) -> Optional[HTTPResponse]:
        rules: PathRules = request.context.get("rules") or PathRules()

        if rules.credentials is not None and not self.is_authorized(request, rules.credentials):
            logger.debug(f"Unauthorized request to {request.path}")
            return unauthorized(self.realm)

        return next(request)

    @staticmethod
    def is_authorized(request: HTTPRequest, credentials: Credentials) -> bool:
        """Check the first Authorization header against the credentials."""
        header = request.headers.get("authorization")
        if header is None:
            return False

        parts = header.split(" ")
        if len(parts) != 2:
            return False

        try:
            decoded = base64.b64decode(parts[1], validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return False

        return decoded == credentials.token
