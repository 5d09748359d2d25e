from __future__ import annotations

from typing import Any

from .errors import ConfigurationError
from .models import FORMAT_UID, FORMAT_UPN, DirectorySettings


def make_user_dn(settings: DirectorySettings, username: str) -> str:
    """Bind identity for ``username`` in the tenant's naming convention.

    Values are used verbatim (no escaping); callers pre-sanitize usernames.
    """
    fmt = settings.user_dn_format
    if fmt == FORMAT_UPN:
        # Active Directory
        return f"{username}@{settings.domain}"
    if fmt == FORMAT_UID:
        # OpenLDAP / 389 Directory Server
        return f"uid={username},{settings.domain}"
    return f"{settings.domain}\\{username}"


def make_user_filter(settings: DirectorySettings, username: str) -> str:
    """Search filter locating the user entry, matching ``make_user_dn``."""
    fmt = settings.user_dn_format
    if fmt == FORMAT_UPN:
        return f"(&(objectclass=person)(sAMAccountName={username}))"
    if fmt == FORMAT_UID:
        return f"(&(|(objectclass=person)(objectclass=iNetOrgPerson))(uid={username}))"
    return f"(sAMAccountName={username})"


def split_servers(text: str | None) -> list[str]:
    """Comma separated host list -> ordered, non-empty list of hosts.

    Blank entries are dropped, later duplicates (case-insensitive) as well.
    """
    out: list[str] = []
    seen: set[str] = set()
    for raw in (text or "").split(","):
        host = raw.strip()
        if not host:
            continue
        key = host.lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(host)
    if not out:
        raise ConfigurationError("LDAP server list is empty")
    return out


def start_index(cached: Any, count: int) -> int:
    """Index of the first server to try; stale or garbage hints wrap or reset."""
    if count <= 0:
        raise ConfigurationError("LDAP server list is empty")
    try:
        n = int(cached)
    except (TypeError, ValueError):
        return 0
    if n < 0:
        return 0
    return n % count
