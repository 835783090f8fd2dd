"""
End-to-end tests for the HTTP fixture server over real sockets.
"""

import gzip
import http.client
import json
import socket
import threading
import time
from concurrent.futures import CancelledError

import pytest

from fixtureserver import Server, ServerConfig
from fixtureserver.http import MultipartField, MultipartFormData
from fixtureserver.http.response import text_response


class TestStaticFixtures:
    """Serving files from the resource directory."""

    def test_empty_page(self, server, fetch):
        result = fetch(server.empty_page)

        assert result.status == 200
        assert result.body == b""
        assert result.headers["Content-Type"] == "text/html"
        assert result.headers["Content-Length"] == "0"

    def test_root_serves_index(self, server, fetch):
        result = fetch(server.prefix + "/")

        assert result.status == 200
        assert "Fixture server index" in result.text

    def test_json(self, server, fetch):
        result = fetch(server.prefix + "/simple.json")

        assert result.headers["Content-Type"] == "application/json"
        assert json.loads(result.body) == {"foo": "bar"}

    def test_not_found(self, server, fetch):
        """Test the plain-text 404 naming the missing fixture."""
        result = fetch(server.prefix + "/does-not-exist.html")

        assert result.status == 404
        assert result.text == "File not found: /does-not-exist.html"

    def test_query_string_ignored(self, server, fetch):
        assert fetch(server.prefix + "/simple.json?cache=1").status == 200

    def test_cross_process_prefix(self, server, fetch):
        """Test that 127.0.0.1 reaches the same server under another origin."""
        assert server.cross_process_prefix != server.prefix
        assert fetch(server.cross_process_prefix + "/empty.html").status == 200

    def test_custom_resource_dir(self, tmp_path, config, fetch):
        (tmp_path / "blob.unknownext").write_bytes(b"\x00\x01\x02")
        config.resource_dir = str(tmp_path)

        with Server.create_http(config=config) as server:
            result = fetch(server.prefix + "/blob.unknownext")

        assert result.headers["Content-Type"] == "application/octet-stream"
        assert result.body == b"\x00\x01\x02"

    def test_head(self, server, fetch):
        """Test that HEAD gets the GET headers and no body."""
        result = fetch(server.prefix + "/simple.json", method="HEAD")

        assert result.status == 200
        assert result.body == b""
        assert result.headers["Content-Length"] == str(len(b'{"foo": "bar"}\n'))


class TestRoutes:
    """Route overrides, redirects and reset."""

    def test_route_override(self, server, fetch):
        server.set_route("/empty.html", lambda request: text_response(200, "overridden"))
        assert fetch(server.empty_page).text == "overridden"

    def test_route_sees_request(self, server, fetch):
        """Test that handlers get the method, query and body."""
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["page"] = request.get_query("page")
            seen["body"] = request.body
            return text_response(201, "created")

        server.set_route("/api", handler)
        result = fetch(server.prefix + "/api?page=2", method="POST", body=b"data")

        assert result.status == 201
        assert seen == {"method": "POST", "page": "2", "body": b"data"}

    def test_redirect(self, server, fetch):
        server.set_redirect("/old", "/empty.html")

        result = fetch(server.prefix + "/old")

        assert result.status == 302
        assert result.headers["location"] == "/empty.html"

    def test_unset_route(self, server, fetch):
        server.set_route("/empty.html", lambda request: text_response(200, "x"))
        server.unset_route("/empty.html")

        assert fetch(server.empty_page).body == b""

    def test_reset_restores_static(self, server, fetch):
        """Test that reset() drops overrides and auth alike."""
        server.set_route("/api", lambda request: text_response(200, "ok"))
        server.set_auth("/empty.html", "user", "pass")
        server.reset()

        assert fetch(server.prefix + "/api").status == 404
        assert fetch(server.empty_page).status == 200

    def test_handler_exception(self, server, fetch):
        def broken(request):
            raise RuntimeError("boom")

        server.set_route("/broken", broken)
        result = fetch(server.prefix + "/broken")

        assert result.status == 500
        assert result.text == "Exception: boom"

    def test_handler_drops_connection(self, server, fetch):
        """Test that a handler returning None closes without a response."""
        server.set_route("/drop", lambda request: None)

        with pytest.raises((http.client.HTTPException, OSError)):
            fetch(server.prefix + "/drop")

    def test_server_survives_dropped_connection(self, server, fetch):
        server.set_route("/drop", lambda request: None)
        with pytest.raises((http.client.HTTPException, OSError)):
            fetch(server.prefix + "/drop")

        assert fetch(server.empty_page).status == 200


class TestAuth:
    """Basic authentication."""

    def test_challenge(self, server, fetch):
        server.set_auth("/empty.html", "user", "pass")

        result = fetch(server.empty_page)

        assert result.status == 401
        assert result.headers["WWW-Authenticate"] == 'Basic realm="Secure Area"'
        assert result.headers["Content-Type"] == "text/plain"
        assert result.text == "HTTP Error 401 Unauthorized: Access is denied"

    def test_credentials_accepted(self, server, fetch):
        server.set_auth("/empty.html", "user", "pass")

        result = fetch(server.empty_page, headers={"Authorization": "Basic dXNlcjpwYXNz"})

        assert result.status == 200

    def test_wrong_credentials(self, server, fetch):
        server.set_auth("/empty.html", "user", "pass")
        result = fetch(server.empty_page, headers={"Authorization": "Basic dXNlcjpub3Bl"})

        assert result.status == 401

    def test_protects_route_overrides(self, server, fetch):
        server.set_route("/api", lambda request: text_response(200, "secret"))
        server.set_auth("/api", "user", "pass")

        assert fetch(server.prefix + "/api").status == 401


class TestHeaders:
    """CSP and gzip."""

    def test_csp(self, server, fetch):
        server.set_csp("/csp.html", "default-src 'self'")

        result = fetch(server.prefix + "/csp.html")

        assert result.headers["Content-Security-Policy"] == "default-src 'self'"
        assert fetch(server.empty_page).headers["Content-Security-Policy"] is None

    def test_gzip(self, server, fetch):
        """Test that the compressed body inflates to the fixture."""
        server.enable_gzip("/simple.json")

        result = fetch(server.prefix + "/simple.json")

        assert result.headers["Content-Encoding"] == "gzip"
        assert result.headers["Content-Length"] == str(len(result.body))
        assert gzip.decompress(result.body) == b'{"foo": "bar"}\n'

    def test_server_header(self, server, fetch):
        result = fetch(server.empty_page)

        assert result.headers["Server"] == "FixtureServer/1.0"
        assert result.headers["Date"].endswith("GMT")


class TestFutureRequest:
    """Waiting for requests from the test thread."""

    def test_captures_request(self, server, fetch):
        waiter = server.future_request("/empty.html")

        fetch(server.empty_page, headers={"X-Test": "1"})

        captured = waiter.result(timeout=5)
        assert captured.method == "GET"
        assert captured.url == "/empty.html"
        assert captured.headers.get("x-test") == "1"

    def test_post_body(self, server, fetch):
        waiter = server.future_request("/empty.html")

        fetch(server.empty_page, method="POST", body=b"hello=world")

        assert waiter.result(timeout=5).post_body == b"hello=world"

    def test_chunked_post_body(self, server, raw_request):
        """Test that a chunked body is decoded and the next request is still framed."""
        waiter = server.future_request("/empty.html")

        data = raw_request(
            server.port,
            b"POST /empty.html HTTP/1.1\r\nHost: x\r\nTransfer-Encoding: chunked\r\n\r\n"
            b"5\r\nhello\r\n0\r\n\r\n"
            b"GET /simple.json HTTP/1.1\r\nHost: x\r\nConnection: close\r\n\r\n",
        )

        assert waiter.result(timeout=5).post_body == b"hello"
        assert data.count(b"HTTP/1.1 200 OK\r\n") == 2
        assert b"400 Bad Request" not in data

    def test_chunked_extensions_and_trailers(self, server, raw_request):
        waiter = server.future_request("/empty.html")

        data = raw_request(
            server.port,
            b"POST /empty.html HTTP/1.1\r\nHost: x\r\nTransfer-Encoding: chunked\r\nConnection: close\r\n\r\n"
            b"3;name=value\r\nhel\r\n2\r\nlo\r\n0\r\nX-Checksum: 1\r\n\r\n",
        )

        assert data.startswith(b"HTTP/1.1 200 OK\r\n")
        assert waiter.result(timeout=5).post_body == b"hello"

    def test_chunked_body_split_across_packets(self, server):
        waiter = server.future_request("/empty.html")

        with socket.create_connection(("127.0.0.1", server.port), timeout=5) as sock:
            sock.sendall(b"POST /empty.html HTTP/1.1\r\nHost: x\r\nTransfer-Encoding: chunked\r\nConnection: close\r\n\r\n")
            sock.sendall(b"5\r\nhel")
            time.sleep(0.05)
            sock.sendall(b"lo\r\n0\r\n\r\n")

            assert waiter.result(timeout=5).post_body == b"hello"

    def test_invalid_chunk_size(self, server, raw_request):
        data = raw_request(
            server.port,
            b"POST /empty.html HTTP/1.1\r\nHost: x\r\nTransfer-Encoding: chunked\r\n\r\nzz\r\nhello\r\n0\r\n\r\n",
        )

        assert data.startswith(b"HTTP/1.1 400 Bad Request\r\n")

    def test_shared_between_waiters(self, server, fetch):
        """Test that two waiters on one path see the same request."""
        first = server.future_request("/simple.json")
        second = server.future_request("/simple.json")

        fetch(server.prefix + "/simple.json?n=1")

        assert first is second
        assert first.result(timeout=5).url == "/simple.json?n=1"

    def test_wait_from_another_thread(self, server, fetch):
        waiter = server.future_request("/empty.html")
        results = []
        thread = threading.Thread(target=lambda: results.append(waiter.result(timeout=5)))
        thread.start()

        fetch(server.empty_page)
        thread.join(timeout=5)

        assert results[0].method == "GET"

    def test_reset_cancels(self, server):
        waiter = server.future_request("/never")
        server.reset()

        with pytest.raises(CancelledError):
            waiter.result(timeout=1)


class TestConnections:
    """Connection handling."""

    def test_keep_alive(self, server):
        """Test two requests over one connection."""
        conn = http.client.HTTPConnection("localhost", server.port, timeout=5)
        try:
            for _ in range(2):
                conn.request("GET", "/simple.json")
                response = conn.getresponse()
                assert response.status == 200
                assert response.getheader("Connection") == "keep-alive"
                response.read()
        finally:
            conn.close()

    def test_connection_close(self, server, raw_request):
        data = raw_request(server.port, b"GET /empty.html HTTP/1.1\r\nHost: x\r\nConnection: close\r\n\r\n")

        assert data.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"Connection: close\r\n" in data

    def test_http10_closes(self, server, raw_request):
        data = raw_request(server.port, b"GET /empty.html HTTP/1.0\r\n\r\n")
        assert data.startswith(b"HTTP/1.1 200 OK\r\n")

    def test_malformed_request(self, server, raw_request):
        """Test that garbage gets a 400 before any routing."""
        data = raw_request(server.port, b"GARBAGE\r\n\r\n")

        assert data.startswith(b"HTTP/1.1 400 Bad Request\r\n")
        assert b"Connection: close\r\n" in data

    def test_unsupported_version(self, server, raw_request):
        data = raw_request(server.port, b"GET / HTTP/2.0\r\n\r\n")
        assert data.startswith(b"HTTP/1.1 505 ")

    def test_expect_continue(self, server):
        """Test that the client is told to send its body before the server waits for it."""
        waiter = server.future_request("/empty.html")

        with socket.create_connection(("127.0.0.1", server.port), timeout=5) as sock:
            sock.sendall(
                b"POST /empty.html HTTP/1.1\r\nHost: x\r\nContent-Length: 5\r\n"
                b"Expect: 100-continue\r\nConnection: close\r\n\r\n"
            )
            interim = b""
            while b"\r\n\r\n" not in interim:
                chunk = sock.recv(4096)
                if not chunk:
                    break
                interim += chunk

            assert interim == b"HTTP/1.1 100 Continue\r\n\r\n"

            sock.sendall(b"hello")
            data = b""
            while True:
                chunk = sock.recv(65536)
                if not chunk:
                    break
                data += chunk

        assert data.startswith(b"HTTP/1.1 200 OK\r\n")
        assert waiter.result(timeout=5).post_body == b"hello"

    def test_no_continue_when_body_sent(self, server, raw_request):
        """Test that no interim response precedes the answer when the body came with the headers."""
        data = raw_request(
            server.port,
            b"POST /empty.html HTTP/1.1\r\nHost: x\r\nContent-Length: 5\r\n"
            b"Expect: 100-continue\r\nConnection: close\r\n\r\nhello",
        )

        assert data.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"100 Continue" not in data

    def test_concurrent_clients(self, server, fetch):
        statuses = []

        def hit():
            statuses.append(fetch(server.prefix + "/simple.json").status)

        threads = [threading.Thread(target=hit) for _ in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert statuses == [200] * 10

    def test_idle_connection_does_not_block_others(self, server, fetch):
        """Test that a parked keep-alive socket leaves the server responsive."""
        with socket.create_connection(("127.0.0.1", server.port)):
            assert fetch(server.empty_page).status == 200


class TestLifecycle:
    """Starting and stopping."""

    def test_port_assigned(self, server):
        assert server.port > 0
        assert server.prefix == f"http://localhost:{server.port}"
        assert server.empty_page == f"{server.prefix}/empty.html"
        assert server.is_running

    def test_explicit_port(self, free_port, config):
        with Server.create_http(free_port, config=config) as server:
            assert server.port == free_port

    def test_stop(self, config):
        """Test that a stopped server refuses connections."""
        server = Server.create_http(config=config)
        waiter = server.future_request("/empty.html")
        server.stop()

        assert not server.is_running
        assert waiter.cancelled()
        with pytest.raises(OSError):
            socket.create_connection(("127.0.0.1", server.port), timeout=1).close()

    def test_stop_is_idempotent(self, config):
        server = Server.create_http(config=config)
        server.stop()
        server.stop()

    def test_stop_with_blocked_handler(self, config, fetch):
        """Test that stop() does not wait for a handler that never returns."""
        entered = threading.Event()
        release = threading.Event()
        errors = []
        server = Server.create_http(config=config)

        def slow(request):
            entered.set()
            release.wait(10)
            return text_response(200, "late")

        def client():
            try:
                fetch(server.prefix + "/slow")
            except (http.client.HTTPException, OSError) as e:
                errors.append(e)

        server.set_route("/slow", slow)
        thread = threading.Thread(target=client)
        thread.start()
        assert entered.wait(5)

        started = time.monotonic()
        server.stop()
        elapsed = time.monotonic() - started
        release.set()
        thread.join(timeout=10)

        assert elapsed < 3
        assert len(errors) == 1

    def test_port_in_use(self, server):
        with pytest.raises(OSError):
            Server.create_http(server.port, config=ServerConfig(log_level="WARNING"))

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            Server.create_http(config=ServerConfig(port=99999))


class TestUpload:
    """Decoding a form upload inside a route handler."""

    def test_multipart_upload(self, server, fetch):
        boundary = "----fixtureboundary"
        body = (
            f"--{boundary}\r\n"
            'Content-Disposition: form-data; name="file1"; filename="file-to-upload.txt"\r\n'
            "Content-Type: text/plain\r\n"
            "\r\n"
            "contents of the file\n\r\n"
            f"--{boundary}--\r\n"
        ).encode()
        uploads = []

        def upload(request):
            uploads.extend(MultipartFormData.parse_request(request))
            return text_response(200, "stored")

        server.set_route("/upload", upload)
        result = fetch(
            server.prefix + "/upload",
            method="POST",
            headers={"Content-Type": f"multipart/form-data; boundary={boundary}"},
            body=body,
        )

        assert result.status == 200
        assert uploads == [MultipartField("file-to-upload.txt", "contents of the file\n")]

    def test_malformed_upload_is_500(self, server, fetch):
        def upload(request):
            MultipartFormData.parse_request(request)
            return text_response(200, "stored")

        server.set_route("/upload", upload)
        result = fetch(server.prefix + "/upload", method="POST", body=b"x")

        assert result.status == 500
        assert result.text.startswith("Exception: ")
