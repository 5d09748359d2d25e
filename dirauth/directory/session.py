from __future__ import annotations

import concurrent.futures
import logging
import math
import socket
import ssl
from typing import Any, Callable, Optional, Sequence

from cryptography import x509
from ldap3 import NONE, SIMPLE, SUBTREE, Connection, Server, Tls
from ldap3.core.exceptions import (
    LDAPCommunicationError,
    LDAPInvalidCredentialsResult,
    LDAPPasswordIsMandatoryError,
    LDAPResponseTimeoutError,
    LDAPStartTLSError,
    LDAPTimeLimitExceededResult,
)

from .errors import (
    DirectoryConnectError,
    DirectoryError,
    DirectoryTimeoutError,
    InvalidCredentialsError,
    UntrustedCertificateError,
)
from .models import (
    INVALID_CREDENTIALS_LABEL,
    PASS_LABEL,
    AttemptOutcome,
    DirectoryEntry,
    DirectorySettings,
    OutcomeKind,
)
from .tls import CertificateValidator, StrictCertificateValidator, evaluate_policy, load_der

log = logging.getLogger(__name__)

DEFAULT_SEARCH_TIME_LIMIT_MS = 10_000

# Result descriptions that mean "this server cannot answer right now".
_UNAVAILABLE_RESULTS = {"busy", "unavailable", "unwillingToPerform", "other"}

_SEARCH_EXECUTOR = concurrent.futures.ThreadPoolExecutor(
    max_workers=16,
    thread_name_prefix="ldap-search",
)


def classify_error(exc: BaseException) -> DirectoryError:
    """Map a transport/protocol exception onto the typed error taxonomy."""
    if isinstance(exc, DirectoryError):
        return exc
    if isinstance(exc, (LDAPInvalidCredentialsResult, LDAPPasswordIsMandatoryError)):
        return InvalidCredentialsError(str(exc) or INVALID_CREDENTIALS_LABEL)
    if isinstance(exc, (LDAPResponseTimeoutError, LDAPTimeLimitExceededResult, TimeoutError)):
        return DirectoryTimeoutError(str(exc) or "Timeout")
    if isinstance(exc, (LDAPCommunicationError, LDAPStartTLSError, ssl.SSLError, OSError)):
        return DirectoryConnectError(str(exc) or "Connect Error")
    return DirectoryError(f"{type(exc).__name__}: {exc}")


def _result_error(result: dict) -> DirectoryError:
    desc = str(result.get("description") or "")
    text = f"{desc}: {result.get('message') or ''}".strip(": ")
    if desc == "invalidCredentials":
        return InvalidCredentialsError(text or INVALID_CREDENTIALS_LABEL)
    if desc == "timeLimitExceeded":
        return DirectoryTimeoutError(text)
    if desc in _UNAVAILABLE_RESULTS:
        return DirectoryConnectError(text)
    return DirectoryError(text or f"LDAP result {result.get('result')}")


class DirectorySession:
    """One connection to one directory server, closed on every exit path.

    Use as a context manager::

        with factory("dc1.example.com", 636, True) as session:
            if session.bind(user_dn, password):
                entry = session.search_one_entry(base, flt, ["mail"])
    """

    def __init__(
        self,
        host: str,
        port: int,
        use_tls: bool = False,
        *,
        validator: CertificateValidator | None = None,
        trusted: Sequence[x509.Certificate] = (),
        connect_timeout_s: float = 5.0,
        receive_timeout_s: float = 10.0,
    ) -> None:
        self.host = host
        self.port = int(port)
        self.use_tls = bool(use_tls)
        self.validator = validator or StrictCertificateValidator()
        self.trusted = list(trusted)
        self.connect_timeout_s = float(connect_timeout_s)
        self.receive_timeout_s = float(receive_timeout_s)
        self.conn: Connection | None = None
        self._pending: concurrent.futures.Future | None = None

    def __enter__(self) -> "DirectorySession":
        try:
            self.open()
        except BaseException:
            self.close()
            raise
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    def open(self) -> None:
        # Handshake without verification: the validator decides afterwards.
        tls = Tls(validate=ssl.CERT_NONE) if self.use_tls else None
        server = Server(
            host=self.host,
            port=self.port,
            use_ssl=self.use_tls,
            tls=tls,
            get_info=NONE,
            connect_timeout=self.connect_timeout_s,
        )
        self.conn = Connection(
            server,
            auto_bind=False,
            read_only=True,
            receive_timeout=self.receive_timeout_s,
        )
        try:
            self.conn.open()
        except Exception as e:
            raise classify_error(e) from e

        if self.use_tls:
            self._check_certificate()

    def _peer_certificates(self) -> tuple[Optional[x509.Certificate], list[x509.Certificate]]:
        sock = getattr(self.conn, "socket", None)
        if sock is None:
            return None, []
        try:
            der = sock.getpeercert(binary_form=True)
        except (ValueError, OSError):
            der = None
        chain_der: list[bytes] = []
        get_chain = getattr(sock, "get_unverified_chain", None)
        if get_chain is not None:
            try:
                chain_der = [c for c in (get_chain() or []) if isinstance(c, bytes)]
            except (ValueError, OSError):
                chain_der = []
        try:
            certificate = load_der([der])[0] if der else None
            chain = load_der(chain_der)
        except ValueError:
            log.warning("Не удалось разобрать сертификат сервера %s", self.host, exc_info=True)
            return None, []
        if certificate is not None and not chain:
            chain = [certificate]
        return certificate, chain

    def _check_certificate(self) -> None:
        certificate, chain = self._peer_certificates()
        errors = evaluate_policy(self.host, certificate, chain, self.trusted)
        if not self.validator.validate(self.host, certificate, chain, errors):
            raise UntrustedCertificateError(f"Untrusted certificate from {self.host}: {errors}")

    def _require_open(self) -> Connection:
        if self.conn is None:
            raise DirectoryConnectError("Connect Error: session is not open")
        return self.conn

    def bind(self, identity: str, password: str) -> bool:
        """True when the server accepted the credentials, False when it rejected them."""
        conn = self._require_open()
        if not password:
            # An empty password would turn into an unauthenticated bind.
            return False
        # Built without a user, so ldap3 set ANONYMOUS at construction.
        conn.authentication = SIMPLE
        conn.user = identity
        conn.password = password
        try:
            ok = bool(conn.bind())
        except Exception as e:
            err = classify_error(e)
            if err.kind == OutcomeKind.INVALID_CREDENTIALS:
                return False
            raise err from e
        if ok:
            return True
        err = _result_error(dict(conn.result or {}))
        if err.kind == OutcomeKind.INVALID_CREDENTIALS:
            return False
        raise err

    def search_one_entry(
        self,
        base_dn: str,
        search_filter: str,
        attributes: Sequence[str],
        time_limit_ms: int = DEFAULT_SEARCH_TIME_LIMIT_MS,
    ) -> DirectoryEntry | None:
        """First entry matching ``search_filter`` under ``base_dn`` or None.

        The limit goes to the server and is enforced locally as well, so a
        silent server cannot block the caller past ``time_limit_ms``.
        """
        conn = self._require_open()
        time_limit_ms = max(1, int(time_limit_ms))
        fut = _SEARCH_EXECUTOR.submit(
            conn.search,
            search_base=base_dn,
            search_filter=search_filter,
            search_scope=SUBTREE,
            attributes=list(attributes),
            size_limit=1,
            time_limit=max(1, math.ceil(time_limit_ms / 1000)),
        )
        try:
            fut.result(timeout=time_limit_ms / 1000)
        except concurrent.futures.TimeoutError as e:
            if not fut.cancel():
                self._pending = fut
            raise DirectoryTimeoutError(f"Search timed out after {time_limit_ms} ms") from e
        except Exception as e:
            raise classify_error(e) from e

        for item in conn.response or []:
            if item.get("type") != "searchResEntry":
                continue
            return DirectoryEntry(dn=str(item.get("dn") or ""), attributes=dict(item.get("attributes") or {}))

        result = dict(conn.result or {})
        desc = result.get("description")
        if desc in (None, "success", "sizeLimitExceeded", "noSuchObject"):
            return None
        raise _result_error(result)

    def close(self) -> None:
        conn, self.conn = self.conn, None
        pending, self._pending = self._pending, None
        if conn is None:
            return
        if pending is not None and not pending.done():
            # The search worker still owns the connection: drop the socket, no unbind.
            self._abort(conn)
            return
        try:
            conn.unbind()
        except Exception:
            log.debug("Ошибка при закрытии соединения с %s", self.host, exc_info=True)

    def _abort(self, conn: Connection) -> None:
        sock = getattr(conn, "socket", None)
        if sock is None:
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            log.debug("Не удалось прервать соединение с %s", self.host, exc_info=True)


class SessionFactory:
    """Opens :class:`DirectorySession` objects with shared TLS/timeout policy."""

    def __init__(
        self,
        validator: CertificateValidator | None = None,
        *,
        trusted: Sequence[x509.Certificate] = (),
        connect_timeout_s: float = 5.0,
        receive_timeout_s: float = 10.0,
    ) -> None:
        self.validator = validator or StrictCertificateValidator()
        self.trusted = list(trusted)
        self.connect_timeout_s = connect_timeout_s
        self.receive_timeout_s = receive_timeout_s

    def __call__(self, server: str, port: int, use_tls: bool) -> DirectorySession:
        return DirectorySession(
            server,
            port,
            use_tls,
            validator=self.validator,
            trusted=self.trusted,
            connect_timeout_s=self.connect_timeout_s,
            receive_timeout_s=self.receive_timeout_s,
        )


OpenSession = Callable[[str, int, bool], Any]


def attempt_bind(
    open_session: OpenSession,
    settings: DirectorySettings,
    server: str,
    identity: str,
    password: str,
    on_bound: Callable[[Any], None] | None = None,
) -> AttemptOutcome:
    """Single bind attempt against ``server``; never raises for directory errors.

    ``on_bound`` runs inside the still open session after a successful bind.
    """
    try:
        with open_session(server, settings.port, settings.use_tls) as session:
            if not session.bind(identity, password):
                return AttemptOutcome(server, OutcomeKind.INVALID_CREDENTIALS, INVALID_CREDENTIALS_LABEL)
            if on_bound is not None:
                on_bound(session)
            return AttemptOutcome(server, OutcomeKind.BOUND, PASS_LABEL)
    except Exception as e:
        err = classify_error(e)
        if err is not e and err.__cause__ is None:
            err.__cause__ = e
        return AttemptOutcome(server, err.kind, err.message, err)
