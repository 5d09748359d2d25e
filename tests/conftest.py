from __future__ import annotations

import ipaddress
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from dirauth.directory import DirectoryConnectError, DirectoryEntry, DirectoryTimeoutError


class FakeSession:
    """Stands in for DirectorySession; behaviour is scripted per server."""

    def __init__(self, directory: "FakeDirectory", server: str) -> None:
        self.directory = directory
        self.server = server

    def __enter__(self) -> "FakeSession":
        self.directory.events.append(("open", self.server))
        if self.directory.behaviors.get(self.server) == "connect":
            raise DirectoryConnectError("Connect Error")
        return self

    def __exit__(self, *exc: Any) -> bool:
        self.directory.events.append(("close", self.server))
        return False

    def bind(self, identity: str, password: str) -> bool:
        self.directory.binds.append((self.server, identity, password))
        behavior = self.directory.behaviors.get(self.server, "ok")
        if behavior == "invalid":
            return False
        if behavior == "timeout":
            raise DirectoryTimeoutError("timed out")
        if behavior == "unknown":
            raise RuntimeError("boom")
        return True

    def search_one_entry(self, base_dn, search_filter, attributes, time_limit_ms=10000):
        self.directory.searches.append((self.server, base_dn, search_filter, list(attributes), time_limit_ms))
        entry = self.directory.entries.get(self.server)
        if isinstance(entry, Exception):
            raise entry
        return entry


class FakeDirectory:
    def __init__(self, behaviors: dict[str, str] | None = None, entries: dict[str, Any] | None = None) -> None:
        self.behaviors = dict(behaviors or {})
        self.entries = dict(entries or {})
        self.events: list[tuple[str, str]] = []
        self.binds: list[tuple[str, str, str]] = []
        self.searches: list[tuple] = []
        self.opened: list[tuple[str, int, bool]] = []

    def __call__(self, server: str, port: int, use_tls: bool) -> FakeSession:
        self.opened.append((server, port, use_tls))
        return FakeSession(self, server)

    @property
    def contacted(self) -> list[str]:
        return [server for (server, _port, _tls) in self.opened]


class RecordingStore:
    def __init__(self, data: dict[str, int] | None = None) -> None:
        self.data = dict(data or {})
        self.writes: list[tuple[str, int]] = []
        self.reads: list[str] = []

    def get(self, key: str) -> int | None:
        self.reads.append(key)
        return self.data.get(key)

    def set(self, key: str, value: int) -> None:
        self.writes.append((key, value))
        self.data[key] = value


@pytest.fixture
def fake_directory():
    return FakeDirectory


@pytest.fixture
def recording_store():
    return RecordingStore


@pytest.fixture
def user_entry() -> DirectoryEntry:
    return DirectoryEntry(
        dn="CN=Alice Liddell,OU=Users,DC=example,DC=com",
        attributes={
            "cn": ["Alice Liddell"],
            "mail": ["alice@example.com"],
            "givenName": ["Alice"],
            "sn": ["Liddell"],
            "displayName": ["Alice Liddell"],
        },
    )


def _make_cert(
    common_name: str = "dc1.example.com",
    san: tuple[str, ...] | None = ("dc1.example.com",),
    issuer: tuple | None = None,
    not_before=None,
    not_after=None,
    ca: bool = False,
):
    key = ec.generate_private_key(ec.SECP256R1())
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    issuer_cert, issuer_key = issuer if issuer else (None, None)
    now = datetime.now(timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer_cert.subject if issuer_cert is not None else subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before or now - timedelta(days=1))
        .not_valid_after(not_after or now + timedelta(days=30))
    )
    if san is not None:
        names: list[x509.GeneralName] = []
        for item in san:
            try:
                names.append(x509.IPAddress(ipaddress.ip_address(item)))
            except ValueError:
                names.append(x509.DNSName(item))
        builder = builder.add_extension(x509.SubjectAlternativeName(names), critical=False)
    if ca:
        builder = builder.add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
    cert = builder.sign(issuer_key if issuer_key is not None else key, hashes.SHA256())
    return cert, key


@pytest.fixture
def make_cert():
    return _make_cert
