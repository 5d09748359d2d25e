from __future__ import annotations

import json
import logging
import os
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from ...directory import ConfigurationError, DirectorySettings

from .schema import DirectorySettingsSchema

if TYPE_CHECKING:
    from ...env_settings import EnvSettings

log = logging.getLogger(__name__)


def default_schema(env: "EnvSettings") -> DirectorySettingsSchema:
    return DirectorySettingsSchema(
        servers=env.ldap_servers,
        port=env.ldap_port,
        use_tls=env.ldap_use_tls,
        domain=env.ldap_domain,
        user_dn_format=env.ldap_user_dn_format,
    )


def load_tenants(path: str) -> dict[str, DirectorySettingsSchema]:
    """Read ``{"tenant-id": {...settings...}}`` from a JSON file."""
    if not path:
        return {}
    if not os.path.isfile(path):
        raise ConfigurationError(f"Файл тенантов не найден: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw: Any = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Не удалось прочитать файл тенантов {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Файл тенантов {path}: ожидается JSON-объект")

    out: dict[str, DirectorySettingsSchema] = {}
    for tenant_id, payload in raw.items():
        try:
            out[str(tenant_id)] = DirectorySettingsSchema.model_validate(payload or {})
        except ValidationError as e:
            raise ConfigurationError(f"Некорректные настройки тенанта '{tenant_id}': {e}") from e
    return out


class TenantSettingsProvider:
    """Настройки каталога по тенанту: из файла тенантов или из окружения."""

    def __init__(self, tenants: dict[str, DirectorySettingsSchema], default: DirectorySettingsSchema | None = None) -> None:
        self.tenants = dict(tenants)
        self.default = default

    @classmethod
    def from_env(cls, env: "EnvSettings") -> "TenantSettingsProvider":
        tenants = load_tenants(env.tenants_file)
        try:
            default = default_schema(env)
        except ValidationError:
            log.warning("Некорректные LDAP_* переменные окружения, настройки по умолчанию не заданы", exc_info=True)
            default = None
        log.info("Загружены настройки каталога: тенантов=%d, по умолчанию=%s", len(tenants), bool(default and default.servers))
        return cls(tenants, default)

    def get(self, tenant_id: str | None = None) -> DirectorySettings:
        schema = self.tenants.get(tenant_id or "")
        if schema is None:
            schema = self.default
        if schema is None or not schema.servers:
            raise ConfigurationError(f"LDAP не настроен для тенанта '{tenant_id or ''}'")
        return schema.to_settings()
