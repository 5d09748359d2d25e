from __future__ import annotations

import hmac
from functools import lru_cache

from fastapi import Header, HTTPException, status

from .env_settings import get_env
from .services.auth import DirectoryAuthenticator, build_authenticator
from .services.settings import TenantSettingsProvider


@lru_cache(maxsize=1)
def get_authenticator() -> DirectoryAuthenticator:
    return build_authenticator(get_env())


@lru_cache(maxsize=1)
def get_settings_provider() -> TenantSettingsProvider:
    return TenantSettingsProvider.from_env(get_env())


def require_admin(x_admin_token: str = Header(default="")) -> None:
    expected = get_env().admin_token
    if not expected:
        # Диагностика выключена, пока не задан ADMIN_TOKEN.
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not found")
    if not hmac.compare_digest(x_admin_token.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
