# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Building of mutually authenticated TLS connection configurations.

build_config() turns caller supplied parameters into an immutable
ConnectionConfiguration: a connection target, a client identity provider and
a server certificate validation policy. Building performs no network I/O;
it only reads and parses the certificate and key material.

Usage:

    # Strict: trust only servers whose certificate chains to ca.crt
    config = build_config(
        "broker.local", 8883, "client",
        "certs/client.crt", "certs/client.key",
        ca_cert="certs/ca.crt",
    )

    # Encrypted client key
    config = build_config(
        "broker.local", 8883, "client",
        "certs/client.crt", "certs/client.key",
        client_key_password="secret",
        ca_cert="certs/ca.crt",
    )

    # INSECURE: accept any server certificate (testing only)
    config = build_config(
        "localhost", 8883, "sub",
        "certs/sub.crt", "certs/sub.key",
        validate_chain=False,
    )
"""

from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass

from cryptography import x509
from pydantic import ValidationError

from .credentials import CredentialSource, Password, describe, load_certificates, read_source
from .exceptions import InvalidTargetError, MissingTrustAnchorError
from .identity import CertificatesProvider, ClientIdentity, DefaultCertificatesProvider, load_client_identity
from .models import ConnectionTarget
from .policy import AlwaysAccept, ChainValidated, ValidationPolicy
from .tls import create_ssl_context

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionConfiguration:
    """
    Ready-to-use TLS connection configuration for MQTTClient.connect().

    Immutable once built; it may be shared read-only between threads.
    """

    target: ConnectionTarget
    certificates_provider: CertificatesProvider
    validation_policy: ValidationPolicy
    use_tls: bool = True

    @property
    def host(self) -> str:
        return self.target.host

    @property
    def port(self) -> int:
        return self.target.port

    @property
    def client_id(self) -> str:
        return self.target.client_id

    @property
    def identity(self) -> ClientIdentity:
        """The identity presented first during the handshake."""
        return self.certificates_provider.get_certificates()[0]

    def create_ssl_context(self) -> ssl.SSLContext:
        """Create an SSL context enforcing this configuration."""
        return create_ssl_context(self)


def load_trust_anchor(ca_cert: CredentialSource) -> x509.Certificate:
    """
    Read and parse a CA certificate (PEM or DER).

    If a PEM source holds several certificates, the first one is the anchor.
    """
    certificates = load_certificates(read_source(ca_cert), "CA certificate")
    if len(certificates) > 1:
        logger.warning(
            "%s holds %d certificates, only the first is used as trust anchor",
            describe(ca_cert),
            len(certificates),
        )
    return certificates[0]


def build_config(
    server_address: str,
    port: int,
    client_id: str,
    client_cert: CredentialSource,
    client_key: CredentialSource,
    client_key_password: Password | None = None,
    ca_cert: CredentialSource | None = None,
    validate_chain: bool = True,
) -> ConnectionConfiguration:
    """
    Build a mutually authenticated TLS connection configuration.

    Args:
        server_address: Broker host name or IP address.
        port: Broker TLS port.
        client_id: MQTT client identifier. Brokers often require it to match
            the client certificate's common name; this is not checked here.
        client_cert: Client certificate (path, inline PEM or bytes).
        client_key: Client private key (path, inline PEM or bytes).
        client_key_password: Password for an encrypted client key.
        ca_cert: CA certificate the broker's certificate must chain to.
        validate_chain: Validate the broker's certificate against ca_cert.
            False accepts any certificate and is INSECURE, for testing only.

    Returns:
        The immutable ConnectionConfiguration.

    Raises:
        MissingTrustAnchorError: validate_chain is set without ca_cert.
        InvalidTargetError: Empty host or client id, or port out of range.
        ConfigurationError: Certificate or key material is unreadable,
            malformed, undecryptable or mismatched.
    """
    if validate_chain and ca_cert is None:
        raise MissingTrustAnchorError()

    try:
        target = ConnectionTarget(host=server_address, port=port, client_id=client_id)
    except ValidationError as e:
        raise InvalidTargetError(f"Invalid connection target: {e}") from e

    policy: ValidationPolicy
    if validate_chain:
        policy = ChainValidated(anchor=load_trust_anchor(ca_cert))
        logger.debug("Server certificates must chain to %s (sha256 %s)",
                     policy.anchor.subject.rfc4514_string(), policy.fingerprint)
    else:
        if ca_cert is not None:
            logger.debug("Ignoring CA certificate %s, chain validation is disabled", describe(ca_cert))
        logger.warning("Server certificate validation is DISABLED for %s, use only for testing", target)
        policy = AlwaysAccept()

    identity = load_client_identity(client_cert, client_key, client_key_password)

    return ConnectionConfiguration(
        target=target,
        certificates_provider=DefaultCertificatesProvider([identity]),
        validation_policy=policy,
    )
