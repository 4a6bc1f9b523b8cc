# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""Shared fixtures: a small PKI generated on the fly."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

NOW = datetime.now(timezone.utc)
KEY_PASSWORD = "s3cret-pass"


@dataclass(frozen=True)
class Pair:
    """A certificate and its private key."""

    cert: x509.Certificate
    key: ec.EllipticCurvePrivateKey

    @property
    def der(self) -> bytes:
        return self.cert.public_bytes(serialization.Encoding.DER)

    @property
    def pem(self) -> bytes:
        return self.cert.public_bytes(serialization.Encoding.PEM)

    def key_pem(
        self,
        password: str | None = None,
        fmt: serialization.PrivateFormat = serialization.PrivateFormat.PKCS8,
    ) -> bytes:
        encryption = (
            serialization.BestAvailableEncryption(password.encode())
            if password
            else serialization.NoEncryption()
        )
        return self.key.private_bytes(serialization.Encoding.PEM, fmt, encryption)


def make_pair(
    common_name: str,
    issuer: Pair | None = None,
    *,
    ca: bool = False,
    path_length: int | None = None,
    not_before: datetime | None = None,
    not_after: datetime | None = None,
    eku: list[x509.ObjectIdentifier] | None = None,
    basic_constraints: bool = True,
    signing_key: ec.EllipticCurvePrivateKey | None = None,
    issuer_name: x509.Name | None = None,
) -> Pair:
    """Issue a certificate, self-signed when no issuer is given."""
    key = ec.generate_private_key(ec.SECP256R1())
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    if issuer_name is None:
        issuer_name = issuer.cert.subject if issuer else subject
    if signing_key is None:
        signing_key = issuer.key if issuer else key
    authority_key = issuer.key.public_key() if issuer else key.public_key()

    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer_name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before or NOW - timedelta(days=1))
        .not_valid_after(not_after or NOW + timedelta(days=365))
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(authority_key), critical=False
        )
    )
    if basic_constraints:
        builder = builder.add_extension(
            x509.BasicConstraints(ca=ca, path_length=path_length if ca else None), critical=True
        )
    if ca:
        builder = builder.add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=True,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
    else:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(common_name)]), critical=False
        )
    if eku:
        builder = builder.add_extension(x509.ExtendedKeyUsage(eku), critical=False)

    return Pair(builder.sign(signing_key, hashes.SHA256()), key)


@dataclass(frozen=True)
class PKI:
    ca: Pair
    intermediate: Pair
    server: Pair
    chained_server: Pair
    client: Pair
    expired_server: Pair
    other_ca: Pair
    foreign_server: Pair
    self_signed: Pair


@pytest.fixture(scope="session")
def pki() -> PKI:
    ca = make_pair("Test Root CA", ca=True)
    intermediate = make_pair("Test Intermediate CA", ca, ca=True, path_length=0)
    other_ca = make_pair("Other Root CA", ca=True)
    return PKI(
        ca=ca,
        intermediate=intermediate,
        server=make_pair("localhost", ca, eku=[ExtendedKeyUsageOID.SERVER_AUTH]),
        chained_server=make_pair("chained.localhost", intermediate, eku=[ExtendedKeyUsageOID.SERVER_AUTH]),
        client=make_pair("client", ca, eku=[ExtendedKeyUsageOID.CLIENT_AUTH]),
        expired_server=make_pair(
            "expired.localhost",
            ca,
            not_before=NOW - timedelta(days=30),
            not_after=NOW - timedelta(days=1),
        ),
        other_ca=other_ca,
        foreign_server=make_pair("foreign.localhost", other_ca, eku=[ExtendedKeyUsageOID.SERVER_AUTH]),
        self_signed=make_pair("self-signed.localhost"),
    )


@dataclass(frozen=True)
class CertFiles:
    ca: Path
    other_ca: Path
    client_cert: Path
    client_key: Path
    client_key_encrypted: Path
    server_cert: Path
    server_key: Path
    self_signed_cert: Path
    self_signed_key: Path


@pytest.fixture(scope="session")
def cert_files(pki: PKI, tmp_path_factory: pytest.TempPathFactory) -> CertFiles:
    folder = tmp_path_factory.mktemp("certs")

    def write(name: str, data: bytes) -> Path:
        path = folder / name
        path.write_bytes(data)
        return path

    return CertFiles(
        ca=write("ca.crt", pki.ca.pem),
        other_ca=write("other_ca.crt", pki.other_ca.pem),
        client_cert=write("client.crt", pki.client.pem),
        client_key=write("client.key", pki.client.key_pem()),
        client_key_encrypted=write("client_encrypted.key", pki.client.key_pem(KEY_PASSWORD)),
        server_cert=write("server.crt", pki.server.pem),
        server_key=write("server.key", pki.server.key_pem()),
        self_signed_cert=write("self_signed.crt", pki.self_signed.pem),
        self_signed_key=write("self_signed.key", pki.self_signed.key_pem()),
    )


@pytest.fixture(scope="session")
def issue():
    """Factory issuing extra certificates for a single test."""
    return make_pair
