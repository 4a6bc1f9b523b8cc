# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Client identity for mutually authenticated TLS.

A ClientIdentity pairs the client certificate (plus any chain certificates
found after it in the same source) with its private key. It can be exported
as a PKCS#12 (PFX) bundle or as PEM, which is how the transport layer loads
it. Identities reach the transport through a CertificatesProvider, so more
than one identity can be offered without changing the transport contract.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from .credentials import (
    ClientPrivateKey,
    CredentialSource,
    Password,
    describe,
    load_certificates,
    load_private_key,
    read_source,
    scrub,
)
from .exceptions import KeyMismatchError

logger = logging.getLogger(__name__)


def _encryption(password: bytes | None) -> serialization.KeySerializationEncryption:
    if password:
        return serialization.BestAvailableEncryption(password)
    return serialization.NoEncryption()


@dataclass(frozen=True, eq=False)
class ClientIdentity:
    """
    Certificate and private key presented by the client during the handshake.

    Two identities are equal when their certificates, chains and private keys
    are byte-for-byte the same, however the key was originally stored.
    """

    certificate: x509.Certificate
    private_key: ClientPrivateKey = field(repr=False)
    chain: tuple[x509.Certificate, ...] = ()

    @property
    def fingerprint(self) -> str:
        """SHA-256 fingerprint of the client certificate, hex encoded."""
        return self.certificate.fingerprint(hashes.SHA256()).hex()

    @property
    def common_name(self) -> str | None:
        """Subject common name of the client certificate, if any."""
        names = self.certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
        return str(names[0].value) if names else None

    def to_pkcs12(self, password: bytes | None = None, name: bytes | None = None) -> bytes:
        """
        Export certificate, chain and key as a PKCS#12 bundle.

        Args:
            password: Optional password protecting the bundle.
            name: Optional friendly name, defaults to the common name.
        """
        if name is None and self.common_name:
            name = self.common_name.encode("utf-8")
        return pkcs12.serialize_key_and_certificates(
            name,
            self.private_key,
            self.certificate,
            list(self.chain) or None,
            _encryption(password),
        )

    def to_pem(self, password: bytes | None = None) -> bytes:
        """Export the certificate chain followed by the PKCS#8 private key as PEM."""
        parts = [c.public_bytes(serialization.Encoding.PEM) for c in (self.certificate, *self.chain)]
        parts.append(
            self.private_key.private_bytes(
                serialization.Encoding.PEM,
                serialization.PrivateFormat.PKCS8,
                _encryption(password),
            )
        )
        return b"".join(parts)

    def _key_der(self) -> bytes:
        return self.private_key.private_bytes(
            serialization.Encoding.DER,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ClientIdentity):
            return NotImplemented
        return (
            self.certificate == other.certificate
            and self.chain == other.chain
            and self._key_der() == other._key_der()
        )

    def __hash__(self) -> int:
        return hash(self.fingerprint)


class CertificatesProvider(ABC):
    """Supplies the client certificates the transport may present."""

    @abstractmethod
    def get_certificates(self) -> Sequence[ClientIdentity]:
        """Return identities in order of preference."""


class DefaultCertificatesProvider(CertificatesProvider):
    """Provider over a fixed, non-empty collection of identities."""

    def __init__(self, identities: Iterable[ClientIdentity]) -> None:
        self._identities = tuple(identities)
        if not self._identities:
            raise ValueError("At least one client identity is required")

    def get_certificates(self) -> Sequence[ClientIdentity]:
        return self._identities

    def __repr__(self) -> str:
        return f"DefaultCertificatesProvider({list(self._identities)!r})"


def load_client_identity(
    client_cert: CredentialSource,
    client_key: CredentialSource,
    password: Password | None = None,
) -> ClientIdentity:
    """
    Build a client identity from PEM certificate and key material.

    The key buffer is zeroed once parsed and the password is not retained.

    Args:
        client_cert: Client certificate, optionally followed by its chain.
        client_key: PEM private key, optionally encrypted.
        password: Password for an encrypted key.

    Returns:
        The assembled ClientIdentity.

    Raises:
        CredentialSourceError: If a source cannot be read.
        MalformedCertificateError: If the certificate cannot be parsed.
        MalformedKeyError: If the key cannot be parsed.
        KeyDecryptionFailedError: If the key cannot be decrypted.
        KeyMismatchError: If the key does not belong to the certificate.
    """
    cert_data = read_source(client_cert)
    certificates = load_certificates(cert_data, "client certificate")

    key_data = read_source(client_key)
    try:
        private_key = load_private_key(key_data, password)
    finally:
        scrub(key_data)

    spki = serialization.PublicFormat.SubjectPublicKeyInfo
    cert_public = certificates[0].public_key().public_bytes(serialization.Encoding.DER, spki)
    key_public = private_key.public_key().public_bytes(serialization.Encoding.DER, spki)
    if cert_public != key_public:
        raise KeyMismatchError()

    identity = ClientIdentity(certificates[0], private_key, tuple(certificates[1:]))
    logger.debug(
        "Loaded client identity %s from %s (sha256 %s, %d chain certificates)",
        identity.certificate.subject.rfc4514_string(),
        describe(client_cert),
        identity.fingerprint,
        len(identity.chain),
    )
    return identity
