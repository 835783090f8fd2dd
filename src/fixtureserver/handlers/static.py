"""
=============================================================================
STATIC FIXTURE RESOURCES
=============================================================================

Serves the fixture files bundled with the package (fixtureserver/assets)
when no route override claims a path.

=============================================================================
FLOW
=============================================================================

    GET /                      GET /simple.json             GET /nope.html
        │                          │                            │
        ▼                          ▼                            ▼
    "/" → "/index.html"        "/simple.json"               "/nope.html"
        │                          │                            │
        ▼                          ▼                            ▼
    assets/index.html          assets/simple.json           (missing)
        │                          │                            │
        ▼                          ▼                            ▼
    200 text/html              200 application/json         404 text/plain
    [+ CSP] [+ gzip]           [+ CSP] [+ gzip]             "File not found:
                                                              /nope.html"

CSP is attached even to the 404: the header is decided from the path
before the resource is looked up.

=============================================================================
SECURITY
=============================================================================

The parser already rejects ".." segments; resolve() additionally checks
that the final, symlink-resolved file is still inside the root so a
fixture directory can never leak the rest of the file system.

=============================================================================
"""

import gzip
import logging
from http import HTTPStatus
from pathlib import Path
from typing import Optional, Union

from ..http.mime_types import get_content_type
from ..http.response import HTTPResponse, ResponseBuilder, not_found, text_response

logger = logging.getLogger(__name__)


# Fixture files shipped inside the package
ASSETS_DIR = Path(__file__).resolve().parent.parent / "assets"

INDEX_PATH = "/index.html"


def static_path(path: str) -> str:
    """Request path → fixture path ("/" serves the index page)."""
    return INDEX_PATH if path == "/" else path


class StaticResourceHandler:
    """
    Resolves request paths to fixture files and builds their responses.

    Usage:
        static = StaticResourceHandler()              # bundled assets
        static = StaticResourceHandler("/tmp/site")   # any directory

        response = static.serve("/simple.json", csp=None, gzip_body=True)
    """

    def __init__(self, root_dir: Optional[Union[str, Path]] = None):
        self.root_dir = Path(root_dir or ASSETS_DIR).resolve()

        if not self.root_dir.is_dir():
            raise ValueError(f"Resource directory does not exist: {self.root_dir}")

    def resolve(self, path: str) -> Optional[Path]:
        """
        Find the fixture file for a request path.

        Returns:
            Absolute file path, or None if there is no such fixture.
        """
        relative = static_path(path).lstrip("/")
        if not relative:
            return None

        full_path = (self.root_dir / relative).resolve()

        try:
            full_path.relative_to(self.root_dir)
        except ValueError:
            logger.warning(f"Path traversal attempt: {path}")
            return None

        return full_path if full_path.is_file() else None

    def read(self, path: str) -> Optional[bytes]:
        """
        Bytes of the fixture for a request path, or None if there is none.

        Raises:
            OSError: The file exists but could not be read.
        """
        file_path = self.resolve(path)
        if file_path is None:
            return None
        return file_path.read_bytes()

    def serve(self, path: str, csp: Optional[str] = None, gzip_body: bool = False) -> HTTPResponse:
        """
        Build the response for a static fixture.

        Args:
            path: Request path (before the index mapping).
            csp: Content-Security-Policy value registered for the path.
            gzip_body: Compress the body and mark it Content-Encoding: gzip.
        """
        resource_path = static_path(path)

        try:
            content = self.read(path)
        except OSError as e:
            logger.error(f"Failed to read {resource_path}: {e}")
            return text_response(HTTPStatus.INTERNAL_SERVER_ERROR, f"Exception: {e}")

        if content is None:
            response = not_found(resource_path)
            if csp is not None:
                response.add_header("Content-Security-Policy", csp)
            return response

        builder = ResponseBuilder().status(HTTPStatus.OK)
        if csp is not None:
            builder.header("Content-Security-Policy", csp)
        builder.content_type(get_content_type(resource_path))

        if gzip_body:
            content = gzip.compress(content)
            builder.header("Content-Encoding", "gzip")

        return builder.body(content).build()
