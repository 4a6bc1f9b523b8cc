# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
pymqtls - Mutually authenticated TLS for MQTT clients.

Builds ready-to-use TLS connection configurations from a client certificate,
its (optionally encrypted) private key and the CA certificate the broker must
chain to:
- Custom root of trust, independent of the system trust store
- Encrypted client keys, decrypted once and never retained
- Validation policy applied during every TLS handshake
- MQTT client with acknowledged publish/subscribe and a reactive message stream

Quick Start:
    >>> from pymqtls import MQTTClient, build_config
    >>>
    >>> config = build_config(
    ...     "localhost", 8883, "client",
    ...     "certs/client.crt", "certs/client.key",
    ...     ca_cert="certs/ca.crt",
    ... )
    >>> with MQTTClient() as client:
    ...     print(client.connect(config).result_code)
    ...     client.publish("hello/world", b"hello world!")
    0

Encrypted Client Key:
    >>> config = build_config(
    ...     "localhost", 8883, "client",
    ...     "certs/client.crt", "certs/client.key",
    ...     client_key_password="secret",
    ...     ca_cert="certs/ca.crt",
    ... )

Testing Without Certificate Validation (INSECURE):
    >>> config = build_config(
    ...     "localhost", 8883, "sub",
    ...     "certs/sub.crt", "certs/sub.key",
    ...     validate_chain=False,
    ... )

Any Other Transport:
    >>> context = config.create_ssl_context()   # ssl.SSLContext for sockets or asyncio
"""

from .client import MQTTClient
from .configurator import ConnectionConfiguration, build_config, load_trust_anchor
from .exceptions import (
    ConfigurationError,
    ConnectionError,
    ConnectionTimeoutError,
    CredentialSourceError,
    InvalidTargetError,
    KeyDecryptionFailedError,
    KeyMismatchError,
    MalformedCertificateError,
    MalformedKeyError,
    MissingTrustAnchorError,
    MQTLSError,
    NotConnectedError,
)
from .identity import (
    CertificatesProvider,
    ClientIdentity,
    DefaultCertificatesProvider,
    load_client_identity,
)
from .models import (
    ConnectionTarget,
    ConnectResult,
    ProtocolVersion,
    PublishResult,
    QoS,
    ReceivedMessage,
    SessionOptions,
    SubscribeResult,
)
from .policy import AlwaysAccept, ChainValidated, ValidationPolicy
from .tls import PolicySSLContext, connect_tls, create_ssl_context

__version__ = "1.0.0"
__author__ = "Firefly Software Solutions Inc."
__license__ = "Apache-2.0"

__all__ = [
    # Configuration
    "build_config",
    "load_trust_anchor",
    "ConnectionConfiguration",
    "ConnectionTarget",
    "SessionOptions",
    "ProtocolVersion",
    # Identity
    "ClientIdentity",
    "CertificatesProvider",
    "DefaultCertificatesProvider",
    "load_client_identity",
    # Validation policies
    "ValidationPolicy",
    "ChainValidated",
    "AlwaysAccept",
    # Transport
    "PolicySSLContext",
    "create_ssl_context",
    "connect_tls",
    # Client
    "MQTTClient",
    "QoS",
    "ConnectResult",
    "PublishResult",
    "SubscribeResult",
    "ReceivedMessage",
    # Exceptions
    "MQTLSError",
    "ConfigurationError",
    "MissingTrustAnchorError",
    "InvalidTargetError",
    "CredentialSourceError",
    "MalformedCertificateError",
    "MalformedKeyError",
    "KeyDecryptionFailedError",
    "KeyMismatchError",
    "ConnectionError",
    "ConnectionTimeoutError",
    "NotConnectedError",
]
