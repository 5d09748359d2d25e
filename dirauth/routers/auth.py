from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..deps import get_authenticator, get_settings_provider, require_admin
from ..directory import ConfigurationError
from ..services.auth import DirectoryAuthenticator
from ..services.settings import TenantSettingsProvider

log = logging.getLogger(__name__)

router = APIRouter(prefix="/auth")


class Credentials(BaseModel):
    username: str = Field(default="", max_length=256)
    password: str = Field(default="", max_length=1024)
    tenant_id: str | None = Field(default=None, max_length=128)


def _validated(body: Credentials) -> tuple[str, str]:
    username = (body.username or "").strip()
    if not username:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Введите логин.")
    if not body.password:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Введите пароль.")
    return username, body.password


@router.post("/login")
async def login(
    body: Credentials,
    authenticator: DirectoryAuthenticator = Depends(get_authenticator),
    provider: TenantSettingsProvider = Depends(get_settings_provider),
):
    username, password = _validated(body)
    try:
        settings = provider.get(body.tenant_id)
        result = await authenticator.authenticate_async(settings, username, password, body.tenant_id)
    except ConfigurationError as e:
        log.error("Вход %s невозможен: %s", username, e)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    payload: dict = {"accepted": result.accepted, "reason": result.reason.value}
    if result.user is not None:
        payload["user"] = {"common_name": result.user.common_name}
    if result.error_message:
        payload["error"] = result.error_message
    return payload


@router.post("/test-servers", dependencies=[Depends(require_admin)])
async def test_servers(
    body: Credentials,
    authenticator: DirectoryAuthenticator = Depends(get_authenticator),
    provider: TenantSettingsProvider = Depends(get_settings_provider),
):
    username, password = _validated(body)
    try:
        settings = provider.get(body.tenant_id)
        results = await authenticator.test_all_servers_async(settings, username, password)
    except ConfigurationError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    return {"results": results}
