from __future__ import annotations

import logging

from ...directory import (
    DirectorySettings,
    DirectoryUser,
    OutcomeKind,
    PreferredServerCache,
    attempt_bind,
    make_user_dn,
    split_servers,
    start_index,
)
from ...directory.session import OpenSession
from .backend import AuthReason, AuthResult

log = logging.getLogger(__name__)


def authenticate(
    settings: DirectorySettings,
    username: str,
    password: str,
    tenant_id: str | None = None,
    *,
    cache: PreferredServerCache,
    open_session: OpenSession,
) -> AuthResult:
    """Аутентификация пользователя с перебором LDAP-серверов.

    Первым пробуется сервер, который последним дал окончательный ответ для
    этого тенанта. Каждый сервер списка пробуется не более одного раза.
    Неверный пароль окончателен: другие серверы не опрашиваются.

    Args:
        settings: Настройки каталога тенанта
        username: Имя пользователя
        password: Пароль
        tenant_id: Идентификатор тенанта (ключ подсказки сервера)
        cache: Подсказка предпочтительного сервера
        open_session: Фабрика LDAP-сессий

    Returns:
        AuthResult: Результат аутентификации

    Raises:
        ConfigurationError: список серверов пуст
    """
    servers = split_servers(settings.servers)
    user_dn = make_user_dn(settings, username)

    if not password:
        # Rejected locally: no server answered, so the hint stays as it is.
        log.warning("Empty password for %s, no LDAP server queried", user_dn)
        return AuthResult(
            accepted=False,
            reason=AuthReason.INVALID_CREDENTIALS,
            error_message="Неверный логин или пароль.",
        )

    index = start_index(cache.get(tenant_id), len(servers))
    for _ in range(len(servers)):
        server = servers[index]
        message = f"Querying LDAP server: {server} for {user_dn} -"
        outcome = attempt_bind(open_session, settings, server, user_dn, password)

        if outcome.kind == OutcomeKind.BOUND:
            log.info("%s bind succeeded", message)
            cache.set(tenant_id, index)
            return AuthResult(
                accepted=True,
                user=DirectoryUser(common_name=username),
                reason=AuthReason.OK,
                server=server,
            )

        if outcome.kind == OutcomeKind.INVALID_CREDENTIALS:
            log.warning("%s bind failed", message)
            cache.set(tenant_id, index)
            return AuthResult(
                accepted=False,
                reason=AuthReason.INVALID_CREDENTIALS,
                server=server,
                error_message="Неверный логин или пароль.",
            )

        if outcome.kind in (OutcomeKind.CONNECT_ERROR, OutcomeKind.TIMEOUT):
            log.error("%s connect to LDAP server failed: %s", message, outcome.detail)
        else:
            log.error("%s %s", message, outcome.detail, exc_info=outcome.error)

        index = (index + 1) % len(servers)

    log.error("All LDAP servers failed for %s", user_dn)
    return AuthResult(
        accepted=False,
        reason=AuthReason.ALL_SERVERS_FAILED,
        error_message="Ни один LDAP-сервер не ответил.",
    )
