"""
Unit tests for ServerConfig and the TLS context factory.
"""

import ssl

import pytest

from fixtureserver.client_certificate import format_name
from fixtureserver.config import ServerConfig
from fixtureserver.tls import (
    DEFAULT_CERTFILE,
    DEFAULT_KEYFILE,
    TLSConfigurationError,
    create_server_context,
)


class TestServerConfig:
    """Tests for ServerConfig."""

    def test_defaults_are_valid(self):
        config = ServerConfig()
        config.validate()

        assert config.host == "localhost"
        assert config.port == 0
        assert config.key_password == "password"

    @pytest.mark.parametrize("overrides", [
        {"port": -1},
        {"port": 70000},
        {"backlog": 0},
        {"buffer_size": 10},
        {"timeout": 0},
        {"keep_alive_timeout": 0},
        {"log_format": "xml"},
    ])
    def test_invalid_values(self, overrides):
        with pytest.raises(ValueError):
            ServerConfig(**overrides).validate()

    def test_with_port(self):
        """Test that with_port copies instead of mutating."""
        config = ServerConfig(timeout=3.0)
        moved = config.with_port(8123)

        assert moved.port == 8123
        assert moved.timeout == 3.0
        assert config.port == 0

    def test_with_port_zero_keeps_config(self):
        config = ServerConfig(port=9000)
        assert config.with_port(0) is config


class TestCreateServerContext:
    """Tests for create_server_context."""

    def test_bundled_keys(self):
        context = create_server_context()

        assert isinstance(context, ssl.SSLContext)
        assert context.verify_mode == ssl.CERT_NONE

    def test_client_auth_requires_certificate(self):
        context = create_server_context(client_auth=True)
        assert context.verify_mode == ssl.CERT_REQUIRED

    def test_explicit_verify_mode_wins(self):
        context = create_server_context(client_auth=True, verify_mode=ssl.CERT_OPTIONAL)
        assert context.verify_mode == ssl.CERT_OPTIONAL

    def test_wrong_password(self):
        """Test that an undecryptable key fails construction."""
        with pytest.raises(TLSConfigurationError):
            create_server_context(password="not-the-password")

    def test_missing_certificate(self, tmp_path):
        with pytest.raises(TLSConfigurationError):
            create_server_context(certfile=tmp_path / "missing.crt", keyfile=DEFAULT_KEYFILE)

    def test_missing_client_ca(self, tmp_path):
        with pytest.raises(TLSConfigurationError):
            create_server_context(
                certfile=DEFAULT_CERTFILE,
                client_auth=True,
                client_ca=tmp_path / "missing-ca.crt",
            )

    def test_error_is_runtime_error(self):
        assert issubclass(TLSConfigurationError, RuntimeError)


class TestFormatName:
    """Tests for certificate name rendering."""

    def test_most_specific_first(self):
        name = (
            (("countryName", "US"),),
            (("organizationName", "Client"),),
            (("commonName", "Alice"),),
        )
        assert format_name(name) == "CN=Alice,O=Client,C=US"

    def test_multi_valued_rdn(self):
        name = ((("organizationName", "Demo"),), (("commonName", "a"), ("userId", "42")))
        assert format_name(name) == "CN=a+UID=42,O=Demo"

    def test_unknown_attribute_kept(self):
        assert format_name(((("serialNumber", "7"),),)) == "serialNumber=7"

    def test_empty(self):
        assert format_name(()) == ""
