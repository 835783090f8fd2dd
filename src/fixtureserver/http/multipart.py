"""
=============================================================================
MULTIPART FORM DATA
=============================================================================

Decodes multipart/form-data request bodies sent by file-upload fixtures.

=============================================================================
WIRE FORMAT
=============================================================================

    Content-Type: multipart/form-data; boundary=----WebKitFormBoundary7MA

    ------WebKitFormBoundary7MA\r\n
    Content-Disposition: form-data; name="file1"; filename="hello.txt"\r\n
    Content-Type: text/plain\r\n
    \r\n
    Hello world\r\n
    ------WebKitFormBoundary7MA\r\n
    Content-Disposition: form-data; name="comment"\r\n
    \r\n
    just a comment\r\n
    ------WebKitFormBoundary7MA--\r\n

Each delimiter is "--" + boundary, the last one is followed by "--".
Splitting on the delimiter leaves one chunk per part (plus blank chunks
before the first and after the last delimiter, which we skip):

    ┌──────────────────────────────────┬─────────────────┐
    │ headers                          │ content         │
    │ (up to the first \r\n\r\n)       │ (minus \r\n)    │
    └──────────────────────────────────┴─────────────────┘

Only the filename is extracted from the headers; tests compare file names
and contents, nothing else.

=============================================================================
"""

from dataclasses import dataclass
from typing import List, Optional
import re

from .request import HTTPRequest


class MultipartParseError(ValueError):
    """Raised when a multipart body or its Content-Type cannot be decoded."""


@dataclass(frozen=True)
class MultipartField:
    """
    One decoded part.

    Attributes:
        filename: Value of filename="..." for file parts, None otherwise.
        content:  Part body as text, trailing CRLF removed.
    """

    filename: Optional[str]
    content: str


class MultipartFormData:
    """
    multipart/form-data decoder.

    Usage:
        def upload(request):
            fields = MultipartFormData.parse_request(request)
            assert fields[0].filename == "file-to-upload.txt"
    """

    BOUNDARY_PATTERN = re.compile(r"boundary=(.*)$")
    FILENAME_PATTERN = re.compile(r'content-disposition: .*filename="([^"]+)"', re.IGNORECASE)

    @classmethod
    def parse_request(cls, request: HTTPRequest) -> List[MultipartField]:
        """Decode the body of a request using its Content-Type boundary."""
        return cls.parse(request.get_header("content-type"), request.body)

    @classmethod
    def parse(cls, content_type: str, body: bytes) -> List[MultipartField]:
        """
        Decode a multipart body.

        Args:
            content_type: Full Content-Type header value.
            body: Raw request body.

        Returns:
            Fields in the order they appear in the body.

        Raises:
            MultipartParseError: No boundary in the content type, or a part
                without a header/content separator.
        """
        boundary = cls.extract_boundary(content_type)
        text = body.decode("utf-8", errors="replace")

        delimiter = re.compile("--" + re.escape(boundary) + r"(?:--)?\r\n")
        fields: List[MultipartField] = []

        for part in delimiter.split(text):
            if not part.strip():
                continue
            fields.append(cls._parse_part(part))

        return fields

    @classmethod
    def extract_boundary(cls, content_type: Optional[str]) -> str:
        match = cls.BOUNDARY_PATTERN.search(content_type or "")
        if not match:
            raise MultipartParseError("Boundary not found!")
        return match.group(1)

    @classmethod
    def _parse_part(cls, part: str) -> MultipartField:
        pieces = part.split("\r\n\r\n", 1)
        if len(pieces) != 2:
            raise MultipartParseError("Unexpected format")
        head, content = pieces

        filename = None
        for line in head.split("\r\n"):
            match = cls.FILENAME_PATTERN.match(line)
            if match:
                filename = match.group(1)

        if content.endswith("\r\n"):
            content = content[:-2]

        return MultipartField(filename=filename, content=content)
