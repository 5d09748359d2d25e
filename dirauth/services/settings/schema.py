from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from ...directory import DirectorySettings
from ...directory.models import FORMAT_UPN


class DirectorySettingsSchema(BaseModel):
    """Tenant directory settings as configured (file / environment)."""

    servers: str = Field(default="", max_length=2048)
    port: int = Field(default=389, ge=1, le=65535)
    use_tls: bool = Field(default=False)
    domain: str = Field(default="", max_length=255)
    user_dn_format: str = Field(default=FORMAT_UPN, max_length=64)

    @field_validator("servers", mode="before")
    @classmethod
    def _join_list(cls, v):
        # JSON files may list servers as an array.
        if isinstance(v, (list, tuple)):
            return ",".join(str(x) for x in v)
        return v

    @field_validator("servers", "domain", "user_dn_format")
    @classmethod
    def _strip(cls, v: str) -> str:
        return (v or "").strip()

    @field_validator("servers")
    @classmethod
    def _validate_servers(cls, v: str) -> str:
        hosts = [h.strip() for h in v.split(",") if h.strip()]
        for h in hosts:
            if any(ch.isspace() for ch in h):
                raise ValueError(f"Некорректное имя LDAP-сервера: '{h}' содержит пробелы.")
        return ",".join(hosts)

    def to_settings(self) -> DirectorySettings:
        return DirectorySettings(
            servers=self.servers,
            port=self.port,
            use_tls=self.use_tls,
            domain=self.domain,
            user_dn_format=self.user_dn_format or FORMAT_UPN,
        )
