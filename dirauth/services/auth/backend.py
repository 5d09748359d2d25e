from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from ...directory import (
    DirectorySettings,
    DirectoryUser,
    MemoryStore,
    PreferredServerCache,
    RedisStore,
    SessionFactory,
)
from ...directory.session import DEFAULT_SEARCH_TIME_LIMIT_MS, OpenSession
from ...directory.tls import AcceptAnyCertificateValidator, StrictCertificateValidator, load_ca_bundle

if TYPE_CHECKING:
    from ...env_settings import EnvSettings

log = logging.getLogger(__name__)


class AuthReason(str, Enum):
    OK = "ok"
    INVALID_CREDENTIALS = "invalid_credentials"
    ALL_SERVERS_FAILED = "all_servers_failed"


@dataclass
class AuthResult:
    """Результат аутентификации пользователя."""
    accepted: bool
    user: DirectoryUser | None = None
    reason: AuthReason = AuthReason.INVALID_CREDENTIALS
    server: str = ""
    error_message: str = ""


class DirectoryAuthenticator:
    """Точка входа для вызывающего кода: вход пользователя и проверка серверов.

    Держит общие для всех вызовов зависимости: подсказку предпочтительного
    сервера и фабрику LDAP-сессий. Сам по себе состояния не имеет, поэтому
    вызовы из разных потоков независимы.
    """

    def __init__(
        self,
        cache: PreferredServerCache | None = None,
        open_session: OpenSession | None = None,
        search_time_limit_ms: int = DEFAULT_SEARCH_TIME_LIMIT_MS,
    ) -> None:
        self.cache = cache or PreferredServerCache()
        self.open_session = open_session or SessionFactory()
        self.search_time_limit_ms = int(search_time_limit_ms)

    def authenticate(
        self,
        settings: DirectorySettings,
        username: str,
        password: str,
        tenant_id: str | None = None,
    ) -> AuthResult:
        from .ldap import authenticate as ldap_auth
        return ldap_auth(
            settings,
            username,
            password,
            tenant_id,
            cache=self.cache,
            open_session=self.open_session,
        )

    def test_all_servers(self, settings: DirectorySettings, username: str, password: str) -> dict[str, str]:
        from ..diagnostics import test_all_servers as run_diagnostics
        return run_diagnostics(
            settings,
            username,
            password,
            open_session=self.open_session,
            search_time_limit_ms=self.search_time_limit_ms,
        )

    async def authenticate_async(
        self,
        settings: DirectorySettings,
        username: str,
        password: str,
        tenant_id: str | None = None,
    ) -> AuthResult:
        # Network I/O blocks; keep it off the event loop.
        return await asyncio.to_thread(self.authenticate, settings, username, password, tenant_id)

    async def test_all_servers_async(self, settings: DirectorySettings, username: str, password: str) -> dict[str, str]:
        return await asyncio.to_thread(self.test_all_servers, settings, username, password)


def build_authenticator(env: "EnvSettings") -> DirectoryAuthenticator:
    """Собирает DirectoryAuthenticator из переменных окружения."""
    if env.cache_backend == "redis":
        store = RedisStore.from_url(env.redis_url)
        log.info("Подсказки LDAP-серверов хранятся в Redis: %s", env.redis_url)
    else:
        store = MemoryStore()

    trusted = []
    if env.ldap_ca_cert_file:
        with open(env.ldap_ca_cert_file, "rb") as f:
            trusted = load_ca_bundle(f.read())

    if env.ldap_tls_validate:
        validator = StrictCertificateValidator()
    else:
        validator = AcceptAnyCertificateValidator()
        log.warning("Проверка TLS-сертификатов LDAP отключена (LDAP_TLS_VALIDATE=false)")

    factory = SessionFactory(
        validator,
        trusted=trusted,
        connect_timeout_s=env.ldap_connect_timeout_s,
        receive_timeout_s=env.ldap_receive_timeout_s,
    )
    return DirectoryAuthenticator(
        cache=PreferredServerCache(store),
        open_session=factory,
        search_time_limit_ms=env.ldap_search_time_limit_ms,
    )
