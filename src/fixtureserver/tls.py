"""
=============================================================================
TLS CONFIGURATION
=============================================================================

Builds the server-side SSLContext of the HTTPS fixture server from the key
material bundled in fixtureserver/keys:

    keys/server.crt      self-signed, CN=localhost, SAN localhost + 127.0.0.1
    keys/server.key      RSA key, encrypted with the password "password"
    keys/client-ca.crt   CA that signs the client certificates tests present

=============================================================================
CLIENT AUTHENTICATION
=============================================================================

    client_auth=False   verify_mode = CERT_NONE      plain HTTPS
    client_auth=True    verify_mode = CERT_REQUIRED  handshake fails without
                                                     a certificate signed by
                                                     client-ca.crt

ClientCertificateServer passes verify_mode=CERT_OPTIONAL explicitly so it
can answer clients that send no certificate at all.

A context that cannot be built is fatal: every failure is raised as one
TLSConfigurationError while the server is being constructed.

=============================================================================
"""

import logging
import ssl
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)


KEYS_DIR = Path(__file__).resolve().parent / "keys"

DEFAULT_CERTFILE = KEYS_DIR / "server.crt"
DEFAULT_KEYFILE = KEYS_DIR / "server.key"
DEFAULT_CLIENT_CA = KEYS_DIR / "client-ca.crt"
DEFAULT_PASSWORD = "password"


class TLSConfigurationError(RuntimeError):
    """The HTTPS server's SSL context could not be created."""


PathLike = Union[str, Path]


def create_server_context(
    certfile: Optional[PathLike] = None,
    keyfile: Optional[PathLike] = None,
    password: Optional[str] = DEFAULT_PASSWORD,
    client_auth: bool = False,
    client_ca: Optional[PathLike] = None,
    verify_mode: Optional[ssl.VerifyMode] = None,
) -> ssl.SSLContext:
    """
    Create a server-side SSLContext.

    Args:
        certfile: PEM certificate chain. Defaults to the bundled one.
        keyfile: PEM private key. Defaults to the bundled one.
        password: Password of an encrypted keyfile.
        client_auth: Require a client certificate (mutual TLS).
        client_ca: CA bundle used to verify client certificates.
        verify_mode: Explicit verify mode, overriding client_auth.

    Raises:
        TLSConfigurationError: Key material missing, unreadable or invalid.
    """
    certfile = Path(certfile or DEFAULT_CERTFILE)
    keyfile = Path(keyfile or DEFAULT_KEYFILE)

    if verify_mode is None:
        verify_mode = ssl.CERT_REQUIRED if client_auth else ssl.CERT_NONE

    try:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(str(certfile), str(keyfile), password=password)

        if verify_mode != ssl.CERT_NONE:
            context.load_verify_locations(cafile=str(client_ca or DEFAULT_CLIENT_CA))
        context.verify_mode = verify_mode

    except (ssl.SSLError, OSError) as e:
        logger.error(f"TLS setup failed for {certfile}: {e}")
        raise TLSConfigurationError(f"Cannot create TLS context from {certfile}: {e}") from e

    logger.debug(f"TLS context ready: cert={certfile.name} verify_mode={verify_mode.name}")
    return context
