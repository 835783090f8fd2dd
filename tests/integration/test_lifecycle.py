"""
Tests for per-class server bookkeeping.
"""

import socket

import pytest

from fixtureserver import ServerConfig, ServerLifecycle, next_free_port


lifecycle = ServerLifecycle(ServerConfig(log_level="WARNING"))


@pytest.fixture(scope="class")
def class_server(request):
    """One server shared by every test of a class."""
    yield lifecycle.get_or_create(request.cls)
    lifecycle.stop(request.cls)


class TestSharedServer:
    """Both tests see the same running server."""

    ports = []

    def test_first(self, class_server, fetch):
        self.ports.append(class_server.port)
        assert fetch(class_server.empty_page).status == 200

    def test_second(self, class_server):
        self.ports.append(class_server.port)

        assert lifecycle.get(TestSharedServer) is class_server
        assert len(set(self.ports)) == 1


class TestServerLifecycle:
    """Direct use of ServerLifecycle."""

    def test_get_or_create_reuses(self):
        owners = ServerLifecycle(ServerConfig(log_level="WARNING"))
        try:
            first = owners.get_or_create("a")
            assert owners.get_or_create("a") is first
            assert owners.get_or_create("b") is not first
            assert len(owners) == 2
        finally:
            owners.stop_all()

    def test_ports_assigned_at_bind(self, free_port):
        """Test that owners get distinct OS-assigned ports even when the config names one."""
        owners = ServerLifecycle(ServerConfig(port=free_port, log_level="WARNING"))
        try:
            first = owners.get_or_create("a")
            second = owners.get_or_create("b")

            assert first.port != second.port
            assert first.is_running and second.is_running
        finally:
            owners.stop_all()

    def test_get_unknown(self):
        assert ServerLifecycle().get("nobody") is None

    def test_stop(self):
        owners = ServerLifecycle(ServerConfig(log_level="WARNING"))
        server = owners.get_or_create("a")

        owners.stop("a")
        owners.stop("a")

        assert not server.is_running
        assert owners.get("a") is None

    def test_stop_all(self):
        owners = ServerLifecycle(ServerConfig(log_level="WARNING"))
        servers = [owners.get_or_create(name) for name in ("a", "b", "c")]

        owners.stop_all()

        assert len(owners) == 0
        assert not any(server.is_running for server in servers)

    def test_next_free_port(self):
        """Test that the returned port can be bound."""
        port = next_free_port()

        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", port))
