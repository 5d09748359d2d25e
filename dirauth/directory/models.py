from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

FORMAT_UPN = "username@LDAPDOMAIN"
FORMAT_UID = "uid=username,LDAPDOMAIN"
FORMAT_DOWN_LEVEL = "LDAPDOMAIN\\username"

USER_ATTRIBUTES = ["cn", "mail", "givenName", "sn", "displayName"]


@dataclass(frozen=True)
class DirectorySettings:
    servers: str
    port: int = 389
    use_tls: bool = False
    domain: str = ""
    user_dn_format: str = FORMAT_UPN


@dataclass
class DirectoryUser:
    common_name: str


@dataclass
class DirectoryEntry:
    dn: str
    attributes: Dict[str, List[Any]] = field(default_factory=dict)

    def first(self, name: str) -> str:
        """First value of an attribute as text ("" when missing).

        Attribute names are matched case-insensitively, like the directory does.
        """
        wanted = name.lower()
        for key, values in self.attributes.items():
            if key.lower() != wanted:
                continue
            if isinstance(values, (list, tuple)):
                return str(values[0]) if values else ""
            return "" if values is None else str(values)
        return ""


class OutcomeKind(str, Enum):
    BOUND = "bound"
    INVALID_CREDENTIALS = "invalid_credentials"
    CONNECT_ERROR = "connect_error"
    TIMEOUT = "timeout"
    UNKNOWN_ERROR = "unknown_error"


PASS_LABEL = "PASS"
INVALID_CREDENTIALS_LABEL = "Invalid Credentials"


@dataclass(frozen=True)
class AttemptOutcome:
    server: str
    kind: OutcomeKind
    detail: str = ""
    error: BaseException | None = None

    @property
    def definitive(self) -> bool:
        return self.kind in (OutcomeKind.BOUND, OutcomeKind.INVALID_CREDENTIALS)

    @property
    def label(self) -> str:
        if self.kind == OutcomeKind.BOUND:
            return PASS_LABEL
        if self.kind == OutcomeKind.INVALID_CREDENTIALS:
            return INVALID_CREDENTIALS_LABEL
        return self.detail or self.kind.value
