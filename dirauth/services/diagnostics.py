from __future__ import annotations

import logging

from ..directory import (
    DirectorySettings,
    OutcomeKind,
    attempt_bind,
    make_user_dn,
    make_user_filter,
    split_servers,
)
from ..directory.models import USER_ATTRIBUTES
from ..directory.session import DEFAULT_SEARCH_TIME_LIMIT_MS, OpenSession

log = logging.getLogger(__name__)


def test_all_servers(
    settings: DirectorySettings,
    username: str,
    password: str,
    *,
    open_session: OpenSession,
    search_time_limit_ms: int = DEFAULT_SEARCH_TIME_LIMIT_MS,
) -> dict[str, str]:
    """Проверка связи со всеми LDAP-серверами тенанта.

    Каждый сервер опрашивается ровно один раз, независимо от результатов
    предыдущих. После успешного bind дополнительно читается запись
    пользователя (mail, givenName, sn, displayName) и пишется в лог.
    Подсказку предпочтительного сервера не читает и не меняет.

    Returns:
        dict: сервер -> "PASS" | "Invalid Credentials" | текст ошибки
    """
    servers = split_servers(settings.servers)
    user_dn = make_user_dn(settings, username)
    user_filter = make_user_filter(settings, username)

    result: dict[str, str] = {}
    for server in servers:
        message = f"Test Querying LDAP server: {server} for {user_dn} -"

        def _read_user(session, message=message) -> None:
            log.info("%s bind succeeded", message)
            entry = session.search_one_entry(
                settings.domain,
                user_filter,
                USER_ATTRIBUTES,
                time_limit_ms=search_time_limit_ms,
            )
            if entry is None:
                log.warning("%s user entry not found with filter %s", message, user_filter)
                return
            log.info(
                "%s user details query succeeded.\nmail: %s\ngivenName: %s\nsn: %s\ndisplayName: %s",
                message,
                entry.first("mail"),
                entry.first("givenName"),
                entry.first("sn"),
                entry.first("displayName"),
            )

        outcome = attempt_bind(open_session, settings, server, user_dn, password, on_bound=_read_user)

        if outcome.kind == OutcomeKind.INVALID_CREDENTIALS:
            log.warning("%s bind failed", message)
        elif outcome.kind in (OutcomeKind.CONNECT_ERROR, OutcomeKind.TIMEOUT):
            log.error("%s connect to LDAP server failed: %s", message, outcome.detail)
        elif outcome.kind == OutcomeKind.UNKNOWN_ERROR:
            log.error(
                "%s connect to LDAP server failed. The exception was:\n%s",
                message,
                outcome.detail,
                exc_info=outcome.error,
            )
        result[server] = outcome.label

    return result
