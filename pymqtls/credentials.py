# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Reading and parsing of certificate and key material.

A credential source is either a filesystem path or the raw bytes themselves.
Strings holding inline PEM text are accepted too. Raw bytes are always copied
into a bytearray so that key material can be scrubbed once it is parsed.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Union

from cryptography import x509
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed448, ed25519, rsa

from .exceptions import (
    CredentialSourceError,
    KeyDecryptionFailedError,
    MalformedCertificateError,
    MalformedKeyError,
)

CredentialSource = Union[str, "os.PathLike[str]", bytes, bytearray, memoryview]
Password = Union[str, bytes]

ClientPrivateKey = Union[
    rsa.RSAPrivateKey,
    ec.EllipticCurvePrivateKey,
    ed25519.Ed25519PrivateKey,
    ed448.Ed448PrivateKey,
]

PEM_MARKER = b"-----BEGIN"

_PEM_KEY_BLOCK = re.compile(rb"-----BEGIN ([A-Z0-9 ]*)PRIVATE KEY-----")
_LEGACY_ENCRYPTED_HEADER = re.compile(rb"Proc-Type:\s*4,\s*ENCRYPTED")


def describe(source: CredentialSource) -> str:
    """Short, log-safe description of a source."""
    if isinstance(source, (bytes, bytearray, memoryview)):
        return f"<{len(source)} bytes>"
    if isinstance(source, str) and source.lstrip().startswith("-----BEGIN"):
        return "<inline PEM>"
    return os.fspath(source)


def read_source(source: CredentialSource) -> bytearray:
    """
    Read a credential source into a new, caller-owned buffer.

    Args:
        source: Path, inline PEM string, or raw bytes.

    Returns:
        A bytearray the caller may zero after use.

    Raises:
        CredentialSourceError: If the path cannot be read.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytearray(source)
    if isinstance(source, str) and source.lstrip().startswith("-----BEGIN"):
        return bytearray(source.encode("ascii"))
    try:
        return bytearray(Path(source).read_bytes())
    except OSError as e:
        raise CredentialSourceError(describe(source), e.strerror or str(e)) from e


def scrub(buffer: bytearray) -> None:
    """Overwrite a buffer with zeros in place."""
    buffer[:] = bytes(len(buffer))


def load_certificates(data: bytes | bytearray, what: str = "certificate") -> list[x509.Certificate]:
    """
    Parse every certificate in a PEM bundle, or a single DER certificate.

    Raises:
        MalformedCertificateError: If no certificate can be parsed.
    """
    try:
        if PEM_MARKER in data:
            return x509.load_pem_x509_certificates(bytes(data))
        return [x509.load_der_x509_certificate(bytes(data))]
    except (ValueError, x509.InvalidVersion) as e:
        raise MalformedCertificateError(what, str(e)) from e


def load_certificate(data: bytes | bytearray, what: str = "certificate") -> x509.Certificate:
    """Parse the first certificate of PEM or DER data."""
    return load_certificates(data, what)[0]


def parse_certificate(data: x509.Certificate | bytes | bytearray) -> x509.Certificate:
    """Accept an already parsed certificate or PEM/DER bytes."""
    if isinstance(data, x509.Certificate):
        return data
    return load_certificate(data, "presented certificate")


def is_encrypted_pem(data: bytes | bytearray) -> bool:
    """True if a PEM private key is password protected (PKCS#8 or legacy OpenSSL)."""
    match = _PEM_KEY_BLOCK.search(data)
    if match is None:
        return False
    if match.group(1) == b"ENCRYPTED ":
        return True
    return _LEGACY_ENCRYPTED_HEADER.search(data, match.end()) is not None


def load_private_key(data: bytearray, password: Password | None = None) -> ClientPrivateKey:
    """
    Parse a PEM private key, decrypting it when a password is given.

    The encoded password buffer is zeroed before returning. The key buffer
    belongs to the caller.

    Raises:
        MalformedKeyError: If the data is not a usable PEM private key.
        KeyDecryptionFailedError: If the password is wrong, missing, or
            given for a key that is not encrypted.
    """
    if _PEM_KEY_BLOCK.search(data) is None:
        raise MalformedKeyError("no PEM private key block found")

    encrypted = is_encrypted_pem(data)
    if encrypted and password is None:
        raise KeyDecryptionFailedError("Private key is encrypted but no password was given")
    if not encrypted and password is not None:
        raise KeyDecryptionFailedError("A password was given but the private key is not encrypted")

    secret = None
    if password is not None:
        secret = bytearray(password.encode("utf-8") if isinstance(password, str) else password)
    try:
        key = serialization.load_pem_private_key(data, password=secret)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        if encrypted:
            raise KeyDecryptionFailedError() from e
        raise MalformedKeyError(str(e)) from e
    finally:
        if secret is not None:
            scrub(secret)

    if not isinstance(key, (rsa.RSAPrivateKey, ec.EllipticCurvePrivateKey,
                            ed25519.Ed25519PrivateKey, ed448.Ed448PrivateKey)):
        raise MalformedKeyError(f"unsupported key type {type(key).__name__}")
    return key
