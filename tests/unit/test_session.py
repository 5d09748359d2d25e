from __future__ import annotations

import socket
import ssl
import threading
import time

import pytest
from cryptography.hazmat.primitives.serialization import Encoding
from ldap3 import SIMPLE
from ldap3.core.exceptions import (
    LDAPPasswordIsMandatoryError,
    LDAPResponseTimeoutError,
    LDAPSocketOpenError,
    LDAPStartTLSError,
)

from dirauth.directory import (
    DirectoryConnectError,
    DirectoryError,
    DirectorySettings,
    DirectoryTimeoutError,
    InvalidCredentialsError,
    OutcomeKind,
    SessionFactory,
    UntrustedCertificateError,
    attempt_bind,
    classify_error,
)
from dirauth.directory import session as session_module
from dirauth.directory.tls import PolicyError


class FakeSocket:
    def __init__(self, der: bytes | None) -> None:
        self.der = der
        self.shut_down = False

    def getpeercert(self, binary_form: bool = False):
        return self.der

    def shutdown(self, how: int) -> None:
        self.shut_down = True


class FakeConnection:
    """Scripted replacement for ldap3.Connection."""

    instances: list["FakeConnection"] = []
    script: dict = {}

    def __init__(self, server, **kwargs) -> None:
        self.server = server
        self.kwargs = kwargs
        self.user = None
        self.password = None
        self.result: dict = {}
        self.response: list = []
        self.socket = None
        self.bind_calls = 0
        self.search_kwargs: dict = {}
        self.unbound = False
        FakeConnection.instances.append(self)

    def open(self) -> None:
        error = self.script.get("open_error")
        if error is not None:
            raise error
        self.socket = FakeSocket(self.script.get("peer_der"))

    def bind(self) -> bool:
        self.bind_calls += 1
        error = self.script.get("bind_error")
        if error is not None:
            raise error
        self.result = dict(self.script.get("bind_result", {"result": 0, "description": "success"}))
        return self.result.get("description") == "success"

    def search(self, **kwargs) -> bool:
        self.search_kwargs = kwargs
        gate = self.script.get("search_gate")
        if gate is not None:
            gate.wait(5)
        self.response = list(self.script.get("search_response", []))
        self.result = dict(self.script.get("search_result", {"result": 0, "description": "success"}))
        return bool(self.response)

    def unbind(self) -> None:
        self.unbound = True


@pytest.fixture
def ldap(monkeypatch):
    FakeConnection.instances = []
    FakeConnection.script = {}
    monkeypatch.setattr(session_module, "Connection", FakeConnection)
    monkeypatch.setattr(session_module, "Server", lambda **kwargs: kwargs)
    return FakeConnection


def test_bind_success_and_close(ldap) -> None:
    factory = SessionFactory(connect_timeout_s=2.0, receive_timeout_s=3.0)

    with factory("dc1.example.com", 389, False) as session:
        assert session.bind("alice@example.com", "secret") is True

    conn = ldap.instances[0]
    assert conn.server["host"] == "dc1.example.com"
    assert conn.server["port"] == 389
    assert conn.server["use_ssl"] is False
    assert conn.server["connect_timeout"] == 2.0
    assert conn.kwargs["receive_timeout"] == 3.0
    assert conn.user == "alice@example.com"
    assert conn.password == "secret"
    assert conn.authentication == SIMPLE
    assert conn.unbound is True


def test_bind_rejected_credentials_returns_false(ldap) -> None:
    ldap.script = {"bind_result": {"result": 49, "description": "invalidCredentials", "message": "80090308"}}

    with SessionFactory()("dc1", 389, False) as session:
        assert session.bind("alice@example.com", "wrong") is False


def test_empty_password_never_reaches_the_server(ldap) -> None:
    with SessionFactory()("dc1", 389, False) as session:
        assert session.bind("alice@example.com", "") is False
    assert ldap.instances[0].bind_calls == 0


def test_bind_unavailable_result_is_a_connect_error(ldap) -> None:
    ldap.script = {"bind_result": {"result": 51, "description": "busy", "message": "try later"}}

    with pytest.raises(DirectoryConnectError):
        with SessionFactory()("dc1", 389, False) as session:
            session.bind("alice@example.com", "secret")
    assert ldap.instances[0].unbound is True


def test_bind_timeout_is_classified(ldap) -> None:
    ldap.script = {"bind_error": LDAPResponseTimeoutError("no response from server")}

    with pytest.raises(DirectoryTimeoutError):
        with SessionFactory()("dc1", 389, False) as session:
            session.bind("alice@example.com", "secret")
    assert ldap.instances[0].unbound is True


def test_open_failure_closes_and_raises_connect_error(ldap) -> None:
    ldap.script = {"open_error": LDAPSocketOpenError("socket connection error")}

    with pytest.raises(DirectoryConnectError):
        with SessionFactory()("dc1", 389, False):
            pass
    assert ldap.instances[0].unbound is True


def test_search_returns_first_entry(ldap) -> None:
    ldap.script = {
        "search_response": [
            {"type": "searchResRef", "uri": ["ldap://other/"]},
            {"type": "searchResEntry", "dn": "CN=Alice,DC=example,DC=com", "attributes": {"mail": ["a@example.com"]}},
            {"type": "searchResEntry", "dn": "CN=Alice2,DC=example,DC=com", "attributes": {}},
        ]
    }

    with SessionFactory()("dc1", 389, False) as session:
        entry = session.search_one_entry("DC=example,DC=com", "(uid=alice)", ["mail"])

    assert entry is not None
    assert entry.dn == "CN=Alice,DC=example,DC=com"
    assert entry.first("MAIL") == "a@example.com"
    kwargs = ldap.instances[0].search_kwargs
    assert kwargs["search_base"] == "DC=example,DC=com"
    assert kwargs["size_limit"] == 1
    assert kwargs["time_limit"] == 10


def test_search_without_match_returns_none(ldap) -> None:
    with SessionFactory()("dc1", 389, False) as session:
        assert session.search_one_entry("DC=example,DC=com", "(uid=nobody)", ["mail"]) is None


def test_search_server_time_limit_is_a_timeout(ldap) -> None:
    ldap.script = {"search_result": {"result": 3, "description": "timeLimitExceeded", "message": ""}}

    with SessionFactory()("dc1", 389, False) as session:
        with pytest.raises(DirectoryTimeoutError):
            session.search_one_entry("DC=example,DC=com", "(uid=alice)", ["mail"])


def test_search_does_not_hang_past_time_limit(ldap) -> None:
    gate = threading.Event()
    ldap.script = {"search_gate": gate}
    try:
        with SessionFactory()("dc1", 389, False) as session:
            started = time.monotonic()
            with pytest.raises(DirectoryTimeoutError):
                session.search_one_entry("DC=example,DC=com", "(uid=alice)", ["mail"], time_limit_ms=200)
            assert time.monotonic() - started < 2
    finally:
        gate.set()
    conn = ldap.instances[0]
    assert conn.unbound is False
    assert conn.socket.shut_down is True


def test_tls_certificate_goes_to_validator(ldap, make_cert) -> None:
    leaf, _ = make_cert("dc1.example.com")
    ldap.script = {"peer_der": leaf.public_bytes(Encoding.DER)}
    seen = []

    class Recorder:
        def validate(self, peer, certificate, chain, policy_errors) -> bool:
            seen.append((peer, certificate, list(chain), policy_errors))
            return True

    with SessionFactory(Recorder())("dc1.example.com", 636, True):
        pass

    conn = ldap.instances[0]
    assert conn.server["use_ssl"] is True
    assert conn.server["tls"].validate == ssl.CERT_NONE
    peer, certificate, chain, errors = seen[0]
    assert peer == "dc1.example.com"
    assert certificate == leaf
    assert chain == [leaf]
    assert errors == PolicyError.CHAIN_ERRORS


def test_rejected_certificate_aborts_connection(ldap, make_cert) -> None:
    leaf, _ = make_cert("dc1.example.com")
    ldap.script = {"peer_der": leaf.public_bytes(Encoding.DER)}

    class Refuse:
        def validate(self, peer, certificate, chain, policy_errors) -> bool:
            return False

    with pytest.raises(UntrustedCertificateError):
        with SessionFactory(Refuse())("dc1.example.com", 636, True):
            pass
    assert ldap.instances[0].unbound is True


def test_validator_not_consulted_without_tls(ldap) -> None:
    class Explode:
        def validate(self, *args) -> bool:
            raise AssertionError("validator called without TLS")

    with SessionFactory(Explode())("dc1", 389, False) as session:
        assert session.bind("alice@example.com", "secret")


@pytest.mark.parametrize(
    "exc, expected",
    [
        (LDAPPasswordIsMandatoryError("password is mandatory"), InvalidCredentialsError),
        (LDAPResponseTimeoutError("timeout"), DirectoryTimeoutError),
        (socket.timeout("timed out"), DirectoryTimeoutError),
        (LDAPSocketOpenError("unable to open socket"), DirectoryConnectError),
        (LDAPStartTLSError("start tls failed"), DirectoryConnectError),
        (ssl.SSLError("handshake"), DirectoryConnectError),
        (ConnectionRefusedError(111, "refused"), DirectoryConnectError),
    ],
)
def test_classify_error(exc, expected) -> None:
    assert isinstance(classify_error(exc), expected)


def test_classify_unknown_error_keeps_detail() -> None:
    err = classify_error(KeyError("attributes"))
    assert type(err) is DirectoryError
    assert err.kind == OutcomeKind.UNKNOWN_ERROR
    assert "KeyError" in err.message


def test_attempt_bind_outcomes(ldap) -> None:
    settings = DirectorySettings(servers="dc1", port=389)
    factory = SessionFactory()

    assert attempt_bind(factory, settings, "dc1", "alice@example.com", "secret").kind == OutcomeKind.BOUND

    ldap.script = {"bind_result": {"result": 49, "description": "invalidCredentials"}}
    outcome = attempt_bind(factory, settings, "dc1", "alice@example.com", "bad")
    assert outcome.kind == OutcomeKind.INVALID_CREDENTIALS
    assert outcome.definitive is True
    assert outcome.label == "Invalid Credentials"

    ldap.script = {"open_error": LDAPSocketOpenError("socket connection error")}
    outcome = attempt_bind(factory, settings, "dc1", "alice@example.com", "secret")
    assert outcome.kind == OutcomeKind.CONNECT_ERROR
    assert outcome.definitive is False
    assert outcome.label == "socket connection error"
    assert isinstance(outcome.error, DirectoryConnectError)
