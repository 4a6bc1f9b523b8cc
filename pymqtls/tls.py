# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
TLS transport wiring for pymqtls connection configurations.

The SSL context built here leaves OpenSSL's own peer verification off and
instead runs the configuration's ValidationPolicy once per completed
handshake, on both blocking sockets (paho-mqtt, socket.create_connection)
and BIO objects (asyncio). A rejected certificate fails the handshake with
ssl.SSLCertVerificationError.

Security levels:
- ChainValidated policy: the broker must present a certificate chaining to
  the configured CA (production)
- AlwaysAccept policy: any certificate is accepted (testing/debugging only)

Examples:
    >>> context = create_ssl_context(config)
    >>> reader, writer = await asyncio.open_connection(
    ...     config.host, config.port, ssl=context, server_hostname=config.host
    ... )

    >>> sock = connect_tls(config, timeout=5.0)
"""

from __future__ import annotations

import logging
import os
import secrets
import socket
import ssl
import tempfile
from typing import TYPE_CHECKING, Union

from .exceptions import ConnectionError, ConnectionTimeoutError
from .identity import CertificatesProvider

if TYPE_CHECKING:
    from .configurator import ConnectionConfiguration
    from .policy import ValidationPolicy

logger = logging.getLogger(__name__)


def _peer_certificates(conn: Union[ssl.SSLSocket, ssl.SSLObject]) -> tuple[bytes, list[bytes]]:
    """Return the peer certificate and the rest of its presented chain as DER."""
    leaf = conn.getpeercert(binary_form=True) or b""
    intermediates: list[bytes] = []
    # get_unverified_chain is only available from Python 3.13
    get_chain = getattr(conn, "get_unverified_chain", None)
    if get_chain is not None:
        chain = get_chain() or []
        intermediates = [c for c in chain[1:] if isinstance(c, bytes)]
    return leaf, intermediates


def _enforce_policy(conn: Union[ssl.SSLSocket, ssl.SSLObject]) -> None:
    policy = getattr(conn.context, "validation_policy", None)
    if policy is None:
        return
    leaf, intermediates = _peer_certificates(conn)
    if not policy.evaluate(leaf, intermediates):
        logger.info("Server certificate rejected by %s policy", policy.kind)
        raise ssl.SSLCertVerificationError(
            "certificate verify failed: server certificate rejected by validation policy"
        )


class PolicySSLSocket(ssl.SSLSocket):
    """SSLSocket that applies the context's validation policy after the handshake."""

    def do_handshake(self, block: bool = False) -> None:
        super().do_handshake(block)
        _enforce_policy(self)


class PolicySSLObject(ssl.SSLObject):
    """SSLObject (asyncio) that applies the context's validation policy after the handshake."""

    def do_handshake(self) -> None:
        super().do_handshake()
        _enforce_policy(self)


class PolicySSLContext(ssl.SSLContext):
    """Client SSL context whose trust decisions belong to a ValidationPolicy."""

    sslsocket_class = PolicySSLSocket
    sslobject_class = PolicySSLObject

    validation_policy: ValidationPolicy | None = None


def _load_identities(context: ssl.SSLContext, provider: CertificatesProvider) -> None:
    identities = provider.get_certificates()
    identity = identities[0]
    if len(identities) > 1:
        logger.debug("Presenting %s, %d other identities not loaded",
                     identity.fingerprint, len(identities) - 1)

    # ssl only loads key material from files: use a private, short-lived file
    # protected by a one-time passphrase
    passphrase = secrets.token_urlsafe(32)
    bundle = identity.to_pem(passphrase.encode("ascii"))
    with tempfile.TemporaryDirectory(prefix="pymqtls-") as tmp:
        path = os.path.join(tmp, "identity.pem")
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(bundle)
        context.load_cert_chain(path, password=passphrase)


def create_ssl_context(config: ConnectionConfiguration) -> PolicySSLContext:
    """
    Create an SSL context for a connection configuration.

    Only the configuration's policy decides whether the server is trusted;
    the system trust store and host name matching are not used.

    Args:
        config: Connection configuration from build_config().

    Returns:
        A client-side PolicySSLContext presenting the client identity.
    """
    context = PolicySSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.check_hostname = False
    context.verify_mode = ssl.CERT_NONE
    context.validation_policy = config.validation_policy
    _load_identities(context, config.certificates_provider)
    return context


def connect_tls(config: ConnectionConfiguration, timeout: float = 10.0) -> ssl.SSLSocket:
    """
    Open a TLS connection to the configured target.

    Raises:
        ConnectionTimeoutError: If the connection or handshake times out.
        ConnectionError: If the connection or handshake fails, including a
            server certificate rejected by the validation policy.
    """
    context = create_ssl_context(config)
    host, port = config.host, config.port
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except socket.timeout as e:
        raise ConnectionTimeoutError(f"Connection to {host}:{port} timed out", host, port) from e
    except OSError as e:
        raise ConnectionError(f"Failed to connect to {host}:{port}: {e}", host, port) from e

    try:
        return context.wrap_socket(sock, server_hostname=host)
    except socket.timeout as e:
        sock.close()
        raise ConnectionTimeoutError(f"TLS handshake with {host}:{port} timed out", host, port) from e
    except OSError as e:
        sock.close()
        raise ConnectionError(f"TLS handshake with {host}:{port} failed: {e}", host, port) from e
