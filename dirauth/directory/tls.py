"""Server certificate checks for LDAPS.

The TLS handshake itself does not verify anything; acceptance is decided by
an injected validator which receives the peer certificate, the presented
chain and the policy errors found by :func:`evaluate_policy`.
"""
from __future__ import annotations

import ipaddress
import logging
from datetime import datetime, timezone
from enum import Flag
from typing import Iterable, Optional, Protocol, Sequence

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.x509.oid import NameOID

log = logging.getLogger(__name__)


class PolicyError(Flag):
    NONE = 0
    NOT_AVAILABLE = 1
    NAME_MISMATCH = 2
    CHAIN_ERRORS = 4
    NOT_TIME_VALID = 8


class CertificateValidator(Protocol):
    def validate(
        self,
        peer: str,
        certificate: Optional[x509.Certificate],
        chain: Sequence[x509.Certificate],
        policy_errors: PolicyError,
    ) -> bool: ...


class StrictCertificateValidator:
    """Accept only certificates without any policy error."""

    def validate(self, peer, certificate, chain, policy_errors) -> bool:
        if policy_errors:
            log.warning("Сертификат LDAP-сервера %s отклонён: %s", peer, policy_errors)
            return False
        return True


class AcceptAnyCertificateValidator:
    """Trust every server certificate (TLS validation switched off)."""

    def validate(self, peer, certificate, chain, policy_errors) -> bool:
        if policy_errors:
            log.debug("Проверка сертификата %s отключена, игнорируем: %s", peer, policy_errors)
        return True


def load_ca_bundle(pem: str | bytes | None) -> list[x509.Certificate]:
    data = pem or b""
    if isinstance(data, str):
        data = data.replace("\r\n", "\n").encode("utf-8")
    if not data.strip():
        return []
    if b"-----BEGIN CERTIFICATE-----" not in data:
        raise ValueError("CA PEM не похож на сертификат (ожидается блок BEGIN/END CERTIFICATE)")
    return x509.load_pem_x509_certificates(data)


def load_der(items: Iterable[bytes]) -> list[x509.Certificate]:
    return [x509.load_der_x509_certificate(b) for b in items if b]


def _dns_match(host: str, pattern: str) -> bool:
    pattern = (pattern or "").strip().rstrip(".").lower()
    if not pattern:
        return False
    if pattern.startswith("*."):
        suffix = pattern[1:]
        label = host[: -len(suffix)] if host.endswith(suffix) else ""
        return bool(label) and "." not in label
    return host == pattern


def host_matches(host: str, certificate: x509.Certificate) -> bool:
    host = (host or "").strip().rstrip(".").lower()
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        ip = None

    try:
        san = certificate.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        san = None

    if san is not None:
        if ip is not None:
            return ip in san.get_values_for_type(x509.IPAddress)
        return any(_dns_match(host, name) for name in san.get_values_for_type(x509.DNSName))

    # Legacy certificates without SAN: fall back to the subject CN.
    if ip is not None:
        return False
    names = certificate.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    return any(_dns_match(host, str(a.value)) for a in names)


def _issued_by(child: x509.Certificate, parent: x509.Certificate) -> bool:
    try:
        child.verify_directly_issued_by(parent)
    except (ValueError, TypeError, InvalidSignature):
        return False
    return True


def chain_trusted(
    certificate: x509.Certificate,
    chain: Sequence[x509.Certificate],
    trusted: Sequence[x509.Certificate],
) -> bool:
    """Walk leaf -> presented intermediates until a trust anchor signs a link.

    Without configured anchors only self-signed certificates count as untrusted.
    """
    if not trusted:
        return certificate.issuer != certificate.subject

    current = certificate
    pool = [c for c in chain if c != certificate]
    for _ in range(len(pool) + 1):
        for anchor in trusted:
            if current == anchor or _issued_by(current, anchor):
                return True
        parent = next((c for c in pool if c != current and _issued_by(current, c)), None)
        if parent is None:
            return False
        pool.remove(parent)
        current = parent
    return False


def evaluate_policy(
    host: str,
    certificate: Optional[x509.Certificate],
    chain: Sequence[x509.Certificate] = (),
    trusted: Sequence[x509.Certificate] = (),
    now: datetime | None = None,
) -> PolicyError:
    if certificate is None:
        return PolicyError.NOT_AVAILABLE

    errors = PolicyError.NONE
    if not host_matches(host, certificate):
        errors |= PolicyError.NAME_MISMATCH

    now = now or datetime.now(timezone.utc)
    if not (certificate.not_valid_before_utc <= now <= certificate.not_valid_after_utc):
        errors |= PolicyError.NOT_TIME_VALID

    if not chain_trusted(certificate, chain, trusted):
        errors |= PolicyError.CHAIN_ERRORS
    return errors
