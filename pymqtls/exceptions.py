# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Custom exceptions for the pymqtls SDK.

All exceptions inherit from MQTLSError, so every error raised while building
a TLS configuration or talking to the broker can be caught with a single
except clause:

    try:
        config = build_config("broker", 8883, "client", "client.crt", "client.key",
                              ca_cert="ca.crt")
    except MQTLSError as e:
        print(f"pymqtls error: {e}")

Configuration problems are reported before any network I/O happens and are
all subclasses of ConfigurationError:

    try:
        config = build_config(...)
    except KeyDecryptionFailedError:
        print("Wrong key password")
    except ConfigurationError as e:
        print(f"Bad TLS material: {e}")

A server certificate rejected by the validation policy is not an exception of
this hierarchy: the policy answers False and the transport fails the
handshake with ssl.SSLCertVerificationError.
"""

from __future__ import annotations


class MQTLSError(Exception):
    """
    Base exception for all pymqtls errors.

    Carries an optional hint that is appended to the message.
    """

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        self.hint = hint
        if hint:
            message = f"{message}\n\n  Hint: {hint}"
        super().__init__(message)


class ConfigurationError(MQTLSError):
    """Base exception for errors raised while building a connection configuration."""


class MissingTrustAnchorError(ConfigurationError):
    """
    Raised when chain validation is requested without a CA certificate.

    Building fails fast here rather than silently trusting every server.
    """

    def __init__(self) -> None:
        super().__init__(
            "A CA certificate is required when validate_chain is enabled",
            hint="Pass ca_cert=<path or bytes>, or validate_chain=False for testing only",
        )


class InvalidTargetError(ConfigurationError):
    """Raised when the server address, port or client id is invalid."""

    def __init__(self, message: str) -> None:
        super().__init__(
            message,
            hint="The host and client id must be non-empty and the port within 1-65535",
        )


class CredentialSourceError(ConfigurationError):
    """
    Raised when certificate or key material cannot be read.

    Common causes:
    - File does not exist
    - Missing read permission
    """

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        super().__init__(
            f"Cannot read {source}: {reason}",
            hint="Check the path and its permissions",
        )


class MalformedCertificateError(ConfigurationError):
    """Raised when certificate bytes cannot be parsed as PEM or DER X.509."""

    def __init__(self, what: str, reason: str | None = None) -> None:
        self.what = what
        message = f"Malformed {what}"
        if reason:
            message += f": {reason}"
        super().__init__(message, hint="Certificates must be PEM or DER encoded X.509")


class MalformedKeyError(ConfigurationError):
    """Raised when private key bytes cannot be parsed."""

    def __init__(self, reason: str | None = None) -> None:
        message = "Malformed private key"
        if reason:
            message += f": {reason}"
        super().__init__(message, hint="The client key must be a PEM encoded private key")


class KeyDecryptionFailedError(ConfigurationError):
    """
    Raised when an encrypted private key cannot be decrypted.

    This typically means:
    - Wrong password
    - The key is encrypted but no password was given
    - A password was given for a key that is not encrypted
    """

    def __init__(self, message: str = "Private key decryption failed") -> None:
        super().__init__(
            message,
            hint="Check client_key_password against the key file",
        )


class KeyMismatchError(ConfigurationError):
    """Raised when the client private key does not belong to the client certificate."""

    def __init__(self) -> None:
        super().__init__(
            "The client private key does not match the client certificate",
            hint="Make sure the certificate and key files come from the same pair",
        )


class ConnectionError(MQTLSError):
    """
    Raised when connection to the broker fails.

    Common causes:
    - Broker is not running
    - Wrong host or port
    - TLS handshake failed (certificate rejected on either side)
    """

    def __init__(
        self,
        message: str,
        host: str | None = None,
        port: int | None = None,
        *,
        hint: str | None = None,
    ) -> None:
        self.host = host
        self.port = port
        if hint is None and host:
            hint = f"Check that the broker is listening for TLS on {host}:{port}"
        super().__init__(message, hint=hint)


class ConnectionTimeoutError(ConnectionError):
    """Raised when the broker does not acknowledge the connection in time."""

    def __init__(self, message: str, host: str | None = None, port: int | None = None) -> None:
        super().__init__(
            message,
            host,
            port,
            hint="Try increasing connect_timeout_ms or check network connectivity",
        )


class NotConnectedError(MQTLSError):
    """Raised when publishing or subscribing on a client that is not connected."""

    def __init__(self) -> None:
        super().__init__("Client is not connected", hint="Call connect(config) first")
