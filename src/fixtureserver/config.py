"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Every knob of a fixture server in one dataclass. There is no environment
or file based configuration: servers live inside a test process and are
configured in code.

    ┌────────────────────────────────────────────────────────────────────┐
    │  NETWORK      host, port, backlog, buffer_size, timeout            │
    │  HTTP         keep_alive, keep_alive_timeout, max_request_size     │
    │  FIXTURES     resource_dir                                         │
    │  TLS          certfile, keyfile, key_password, client_ca           │
    │  LOGGING      log_level, log_format                                │
    │  IDENTITY     server_name                                          │
    └────────────────────────────────────────────────────────────────────┘

Example:
    config = ServerConfig(port=0, log_level="DEBUG")
    server = Server.create_http(config=config)

=============================================================================
"""

import dataclasses
from dataclasses import dataclass
from typing import Optional


@dataclass
class ServerConfig:
    """
    Configuration for a fixture server.

    TLS fields left as None fall back to the certificate, key and client
    CA bundled in fixtureserver/keys.
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────
    host: str = "localhost"
    """
    Interface to bind. "localhost" resolves to 127.0.0.1 for AF_INET, so
    both http://localhost:PORT and http://127.0.0.1:PORT reach the server.
    """

    port: int = 0
    """Port to listen on. 0 lets the OS pick a free one."""

    backlog: int = 128

    buffer_size: int = 8192
    """recv() chunk size in bytes."""

    timeout: Optional[float] = 30.0
    """Socket timeout while reading the first request of a connection."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP SETTINGS
    # ─────────────────────────────────────────────────────────────────────
    keep_alive: bool = True

    keep_alive_timeout: float = 5.0
    """Idle time after which a kept-alive connection is closed."""

    max_request_size: int = 64 * 1024 * 1024  # uploads in tests can be big

    # ─────────────────────────────────────────────────────────────────────
    # FIXTURES
    # ─────────────────────────────────────────────────────────────────────
    resource_dir: Optional[str] = None
    """Directory of static fixtures. None serves the bundled assets."""

    # ─────────────────────────────────────────────────────────────────────
    # TLS
    # ─────────────────────────────────────────────────────────────────────
    certfile: Optional[str] = None
    keyfile: Optional[str] = None
    key_password: str = "password"
    client_ca: Optional[str] = None

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────
    log_level: str = "INFO"
    """Level for the "fixtureserver" logger tree."""

    log_format: str = "text"
    """Access log format: "text" or "json"."""

    # ─────────────────────────────────────────────────────────────────────
    # SERVER IDENTITY
    # ─────────────────────────────────────────────────────────────────────
    server_name: str = "FixtureServer/1.0"

    def with_port(self, port: int) -> "ServerConfig":
        """Copy listening on port; port 0 keeps the configured one."""
        return dataclasses.replace(self, port=port) if port else self

    def validate(self) -> None:
        """Fail fast on values the server cannot run with."""
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")
        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")
        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")
        if self.keep_alive_timeout <= 0:
            raise ValueError("keep_alive_timeout must be > 0")
        if self.log_format not in ("text", "json"):
            raise ValueError(f"Unknown log_format: {self.log_format}")
