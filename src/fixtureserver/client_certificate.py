"""
=============================================================================
CLIENT CERTIFICATE SERVER
=============================================================================

An HTTPS server that reports on the client certificate of every request.
Tests use it to check that the browser presents the certificate configured
for an origin, and only for that origin.

    ┌──────────────────────────┬─────────────────────────────────────────┐
    │ client presents          │ answer                                  │
    ├──────────────────────────┼─────────────────────────────────────────┤
    │ certificate signed by    │ 200  Hello CN=Alice, your certificate   │
    │ the client CA            │      was issued by CN=...!              │
    │ no certificate           │ 401  Sorry, but you need to provide a   │
    │                          │      client certificate to continue.    │
    │ untrusted certificate    │ handshake fails, no HTTP answer         │
    └──────────────────────────┴─────────────────────────────────────────┘

The body is a pair of divs a page assertion can find by test id:

    <div data-testid='servername'>127.0.0.1</div>
    <div data-testid='message'>Hello CN=Alice, ...</div>

Names are rendered in RFC 2253 order (most specific RDN first), the way
X.500 principals are usually printed: "O=Demo,CN=localhost".

=============================================================================
"""

import logging
import ssl
from http import HTTPStatus
from typing import Any, Dict, Optional, Tuple

from .config import ServerConfig
from .http.request import HTTPRequest
from .http.response import HTTPResponse, ResponseBuilder
from .middleware import AccessLogMiddleware, MiddlewarePipeline, NextHandler
from .server import Server
from .tls import create_server_context

logger = logging.getLogger(__name__)


# getpeercert() attribute names → RFC 4514 short names
ATTRIBUTE_NAMES = {
    "commonName": "CN",
    "countryName": "C",
    "localityName": "L",
    "stateOrProvinceName": "ST",
    "organizationName": "O",
    "organizationalUnitName": "OU",
    "streetAddress": "STREET",
    "domainComponent": "DC",
    "userId": "UID",
    "emailAddress": "EMAILADDRESS",
}


def format_name(name: Tuple[Tuple[Tuple[str, str], ...], ...]) -> str:
    """
    Render a subject/issuer tuple from SSLSocket.getpeercert().

        ((("organizationName", "Demo"),), (("commonName", "localhost"),))
        → "CN=localhost,O=Demo"
    """
    rdns = []
    for rdn in reversed(name):
        rdns.append("+".join(f"{ATTRIBUTE_NAMES.get(key, key)}={value}" for key, value in rdn))
    return ",".join(rdns)


def div(test_id: str, message: str) -> str:
    return f"<div data-testid='{test_id}'>{message}</div>"


class ClientCertificateServer(Server):
    """
    HTTPS server answering every path with a client certificate report.

    Attributes:
        origin: https://localhost:port
        cross_origin: https://127.0.0.1:port
        url: origin + "/index.html"
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        config = config or ServerConfig()
        context = create_server_context(
            certfile=config.certfile,
            keyfile=config.keyfile,
            password=config.key_password,
            client_ca=config.client_ca,
            verify_mode=ssl.CERT_OPTIONAL,
        )
        super().__init__(config, ssl_context=context)

        self.origin = self.prefix
        self.cross_origin = self.cross_process_prefix
        self.url = f"{self.origin}/index.html"

    @classmethod
    def create(cls, port: int = 0, config: Optional[ServerConfig] = None) -> "ClientCertificateServer":
        return cls((config or ServerConfig()).with_port(port))

    def _create_handler(self) -> NextHandler:
        return MiddlewarePipeline().add(
            AccessLogMiddleware(log_format=self.config.log_format)
        ).wrap(self.report)

    def report(self, request: HTTPRequest) -> HTTPResponse:
        """Describe the client certificate the request arrived with."""
        body = div("servername", request.client_address[0])
        certificate: Optional[Dict[str, Any]] = request.peer_certificate

        if certificate:
            subject = format_name(certificate.get("subject", ()))
            issuer = format_name(certificate.get("issuer", ()))
            logger.debug(f"Client certificate: subject={subject} issuer={issuer}")
            status = HTTPStatus.OK
            body += div("message", f"Hello {subject}, your certificate was issued by {issuer}!")
        else:
            status = HTTPStatus.UNAUTHORIZED
            body += div("message", "Sorry, but you need to provide a client certificate to continue.")

        return ResponseBuilder().status(status).html(body).build()
