"""Error taxonomy of the directory layer.

The session adapter turns raw transport exceptions into these types; the
failover loop only ever looks at ``kind``.
"""
from __future__ import annotations

from .models import OutcomeKind


class DirectoryAuthError(Exception):
    """Base class for everything raised by dirauth."""


class ConfigurationError(DirectoryAuthError):
    """Tenant settings are unusable (e.g. an empty server list). Never retried."""


class DirectoryError(DirectoryAuthError):
    kind: OutcomeKind = OutcomeKind.UNKNOWN_ERROR

    def __init__(self, message: str = "", *, kind: OutcomeKind | None = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args and self.args[0] else self.kind.value


class DirectoryConnectError(DirectoryError):
    kind = OutcomeKind.CONNECT_ERROR


class DirectoryTimeoutError(DirectoryConnectError):
    kind = OutcomeKind.TIMEOUT


class UntrustedCertificateError(DirectoryConnectError):
    """The certificate validator refused the server certificate."""


class InvalidCredentialsError(DirectoryError):
    kind = OutcomeKind.INVALID_CREDENTIALS
