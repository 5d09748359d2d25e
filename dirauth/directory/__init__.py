"""Directory (LDAP) layer: settings model, formatting, cache, sessions.

Public API:
    - DirectorySettings, DirectoryUser, DirectoryEntry
    - make_user_dn, make_user_filter, split_servers
    - PreferredServerCache, MemoryStore, RedisStore
    - DirectorySession, SessionFactory, attempt_bind
"""

from .cache import MemoryStore, PreferredServerCache, RedisStore
from .errors import (
    ConfigurationError,
    DirectoryAuthError,
    DirectoryConnectError,
    DirectoryError,
    DirectoryTimeoutError,
    InvalidCredentialsError,
    UntrustedCertificateError,
)
from .models import AttemptOutcome, DirectoryEntry, DirectorySettings, DirectoryUser, OutcomeKind
from .session import DirectorySession, SessionFactory, attempt_bind, classify_error
from .utils import make_user_dn, make_user_filter, split_servers, start_index

__all__ = [
    "AttemptOutcome",
    "ConfigurationError",
    "DirectoryAuthError",
    "DirectoryConnectError",
    "DirectoryEntry",
    "DirectoryError",
    "DirectorySession",
    "DirectorySettings",
    "DirectoryTimeoutError",
    "DirectoryUser",
    "InvalidCredentialsError",
    "MemoryStore",
    "OutcomeKind",
    "PreferredServerCache",
    "RedisStore",
    "SessionFactory",
    "UntrustedCertificateError",
    "attempt_bind",
    "classify_error",
    "make_user_dn",
    "make_user_filter",
    "split_servers",
    "start_index",
]
