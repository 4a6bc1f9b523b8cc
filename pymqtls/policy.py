# Copyright (c) 2026 Firefly Software Solutions Inc.
# Licensed under the Apache License, Version 2.0

"""
Server certificate validation policies.

A policy decides, once per TLS handshake, whether the certificate presented
by the broker is trusted. Two variants exist:

- ChainValidated: trust only certificates that chain to one given CA
  certificate (the trust anchor). The system trust store is never consulted.
- AlwaysAccept: trust everything. INSECURE, use only for testing.

Evaluation is an authorization decision, not an I/O operation: it returns a
bool and never raises. Policies are immutable and safe to evaluate from
several connection threads at once.

Example:
    >>> policy = ChainValidated(anchor=ca_certificate)
    >>> policy.evaluate(server_der, intermediates=[intermediate_der])
    True
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import ClassVar, Union

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.x509.oid import ExtendedKeyUsageOID

from .credentials import parse_certificate
from .exceptions import MalformedCertificateError

logger = logging.getLogger(__name__)

PresentedCertificate = Union[x509.Certificate, bytes, bytearray]

MAX_CHAIN_DEPTH = 8

_EVALUATION_ERRORS = (
    ValueError,
    TypeError,
    InvalidSignature,
    UnsupportedAlgorithm,
    x509.DuplicateExtension,
    MalformedCertificateError,
)


class ValidationPolicy(ABC):
    """Decision function applied to the broker's certificate during the handshake."""

    kind: ClassVar[str]
    is_secure: ClassVar[bool]

    @abstractmethod
    def evaluate(
        self,
        certificate: PresentedCertificate,
        intermediates: Sequence[PresentedCertificate] = (),
        *,
        at: datetime | None = None,
    ) -> bool:
        """
        Decide whether a presented certificate is trusted.

        Args:
            certificate: The peer certificate (parsed, DER or PEM).
            intermediates: Any further certificates the peer presented.
            at: Evaluation time, defaults to now.

        Returns:
            True if trusted, False otherwise.
        """

    def __call__(
        self,
        certificate: PresentedCertificate,
        intermediates: Sequence[PresentedCertificate] = (),
    ) -> bool:
        return self.evaluate(certificate, intermediates)


@dataclass(frozen=True)
class ChainValidated(ValidationPolicy):
    """
    Trust certificates that chain to a single trust anchor.

    The chain is built from the presented certificate through the presented
    intermediates to the anchor. Every link must be signed by the next, every
    certificate (anchor included) must be valid at the evaluation time, and
    issuers must be allowed to sign certificates. Revocation is not checked
    and nothing is fetched from the network.
    """

    anchor: x509.Certificate

    kind: ClassVar[str] = "chain_validated"
    is_secure: ClassVar[bool] = True

    def evaluate(
        self,
        certificate: PresentedCertificate,
        intermediates: Sequence[PresentedCertificate] = (),
        *,
        at: datetime | None = None,
    ) -> bool:
        when = _utc(at)
        try:
            leaf = parse_certificate(certificate)
            pool = [parse_certificate(c) for c in intermediates]
            trusted = _time_valid(leaf, when) and self._chains_to_anchor(leaf, pool, when, [leaf])
        except _EVALUATION_ERRORS as e:
            logger.debug("Certificate evaluation failed: %s", e)
            return False

        if not trusted:
            logger.debug("No valid chain from %s to anchor %s",
                         leaf.subject.rfc4514_string(), self.anchor.subject.rfc4514_string())
        return trusted

    @property
    def fingerprint(self) -> str:
        """SHA-256 fingerprint of the anchor, hex encoded."""
        return self.anchor.fingerprint(hashes.SHA256()).hex()

    def _chains_to_anchor(
        self,
        cert: x509.Certificate,
        pool: list[x509.Certificate],
        when: datetime,
        path: list[x509.Certificate],
    ) -> bool:
        if cert == self.anchor:
            return True
        if len(path) > MAX_CHAIN_DEPTH:
            return False

        if _can_issue(self.anchor, path, when) and _issued_by(cert, self.anchor):
            return True

        for candidate in pool:
            if candidate == self.anchor or candidate in path:
                continue
            if candidate.subject != cert.issuer:
                continue
            if not _can_issue(candidate, path, when) or not _issued_by(cert, candidate):
                continue
            if self._chains_to_anchor(candidate, pool, when, path + [candidate]):
                return True
        return False


@dataclass(frozen=True)
class AlwaysAccept(ValidationPolicy):
    """
    Trust every certificate, including expired, self-signed or malformed ones.

    INSECURE: disables server authentication entirely. Use only for testing
    and diagnostics, never in production.
    """

    kind: ClassVar[str] = "always_accept"
    is_secure: ClassVar[bool] = False

    def evaluate(
        self,
        certificate: PresentedCertificate,
        intermediates: Sequence[PresentedCertificate] = (),
        *,
        at: datetime | None = None,
    ) -> bool:
        return True


def _utc(at: datetime | None) -> datetime:
    if at is None:
        return datetime.now(timezone.utc)
    if at.tzinfo is None:
        return at.replace(tzinfo=timezone.utc)
    return at


def _extension(cert: x509.Certificate, ext_type: type) -> x509.ExtensionType | None:
    try:
        return cert.extensions.get_extension_for_class(ext_type).value
    except x509.ExtensionNotFound:
        return None


def _time_valid(cert: x509.Certificate, when: datetime) -> bool:
    return cert.not_valid_before_utc <= when <= cert.not_valid_after_utc


def _issued_by(cert: x509.Certificate, issuer: x509.Certificate) -> bool:
    try:
        cert.verify_directly_issued_by(issuer)
    except (ValueError, TypeError, InvalidSignature, UnsupportedAlgorithm):
        return False
    return True


def _can_issue(issuer: x509.Certificate, below: list[x509.Certificate], when: datetime) -> bool:
    """Check that issuer may sign the last certificate of below (leaf first)."""
    if not _time_valid(issuer, when):
        return False

    constraints = _extension(issuer, x509.BasicConstraints)
    if constraints is None:
        if issuer.version != x509.Version.v1:
            return False
    else:
        if not constraints.ca:
            return False
        # below holds the leaf plus every intermediate already on the path
        if constraints.path_length is not None and len(below) - 1 > constraints.path_length:
            return False

    usage = _extension(issuer, x509.KeyUsage)
    if usage is not None and not usage.key_cert_sign:
        return False

    return _eku_nested(issuer, below[-1])


def _eku_nested(issuer: x509.Certificate, child: x509.Certificate) -> bool:
    issuer_eku = _extension(issuer, x509.ExtendedKeyUsage)
    child_eku = _extension(child, x509.ExtendedKeyUsage)
    if issuer_eku is None or child_eku is None:
        return True
    allowed = set(issuer_eku)
    if ExtendedKeyUsageOID.ANY_EXTENDED_KEY_USAGE in allowed:
        return True
    return set(child_eku) <= allowed
