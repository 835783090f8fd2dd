"""
Unit tests for multipart/form-data decoding.
"""

import pytest

from fixtureserver.http.multipart import (
    MultipartField,
    MultipartFormData,
    MultipartParseError,
)
from fixtureserver.http.request import parse_request


BOUNDARY = "----WebKitFormBoundary7MA4YWxkTrZu0gW"
CONTENT_TYPE = f"multipart/form-data; boundary={BOUNDARY}"


def encode(fields):
    """Build a multipart body the way a browser does."""
    body = ""
    for name, filename, content in fields:
        body += f"--{BOUNDARY}\r\n"
        if filename is None:
            body += f'Content-Disposition: form-data; name="{name}"\r\n'
        else:
            body += f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
            body += "Content-Type: text/plain\r\n"
        body += "\r\n" + content + "\r\n"
    body += f"--{BOUNDARY}--\r\n"
    return body.encode("utf-8")


class TestMultipartFormData:
    """Tests for MultipartFormData."""

    def test_fields_in_source_order(self):
        """Test that files and plain fields decode in order."""
        body = encode([
            ("file1", "file-to-upload.txt", "contents of the file"),
            ("comment", None, "just a comment"),
            ("file2", "pptr.png", "not really a png"),
        ])

        fields = MultipartFormData.parse(CONTENT_TYPE, body)

        assert fields == [
            MultipartField("file-to-upload.txt", "contents of the file"),
            MultipartField(None, "just a comment"),
            MultipartField("pptr.png", "not really a png"),
        ]

    def test_only_one_trailing_crlf_stripped(self):
        """Test that content ending in a line break keeps it."""
        body = encode([("f", "a.txt", "line\r\n")])
        fields = MultipartFormData.parse(CONTENT_TYPE, body)

        assert fields[0].content == "line\r\n"

    def test_empty_content(self):
        body = encode([("f", "empty.txt", "")])
        assert MultipartFormData.parse(CONTENT_TYPE, body)[0].content == ""

    def test_filename_header_case_insensitive(self):
        """Test that the Content-Disposition name match ignores case."""
        body = (
            f"--{BOUNDARY}\r\n"
            'CONTENT-DISPOSITION: form-data; name="f"; filename="UP.txt"\r\n'
            "\r\n"
            "data\r\n"
            f"--{BOUNDARY}--\r\n"
        ).encode()

        assert MultipartFormData.parse(CONTENT_TYPE, body)[0].filename == "UP.txt"

    def test_parse_request(self):
        """Test decoding straight from a parsed request."""
        body = encode([("file1", "hello.txt", "Hello world")])
        raw = (
            b"POST /upload HTTP/1.1\r\n"
            + f"Content-Type: {CONTENT_TYPE}\r\n".encode()
            + f"Content-Length: {len(body)}\r\n".encode()
            + b"\r\n"
            + body
        )

        fields = MultipartFormData.parse_request(parse_request(raw))

        assert fields == [MultipartField("hello.txt", "Hello world")]

    def test_extract_boundary(self):
        assert MultipartFormData.extract_boundary(CONTENT_TYPE) == BOUNDARY

    def test_missing_boundary(self):
        with pytest.raises(MultipartParseError, match="Boundary not found!"):
            MultipartFormData.parse("multipart/form-data", b"")

    def test_missing_content_type(self):
        with pytest.raises(MultipartParseError):
            MultipartFormData.parse(None, b"")

    def test_part_without_separator(self):
        """Test that a part with no blank line after its headers is rejected."""
        body = (
            f"--{BOUNDARY}\r\n"
            'Content-Disposition: form-data; name="f"\r\n'
            "no separator here\r\n"
            f"--{BOUNDARY}--\r\n"
        ).encode()

        with pytest.raises(MultipartParseError, match="Unexpected format"):
            MultipartFormData.parse(CONTENT_TYPE, body)

    def test_parse_error_is_value_error(self):
        assert issubclass(MultipartParseError, ValueError)
