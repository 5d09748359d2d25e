from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class EnvSettings(BaseSettings):
    # Logging
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_dir: str = Field("data/logs", alias="LOG_DIR")
    log_retention_days: int = Field(30, alias="LOG_RETENTION_DAYS")

    # Directory defaults (tenants without their own entry in TENANTS_FILE)
    ldap_servers: str = Field("", alias="LDAP_SERVERS")  # ',' separated
    ldap_port: int = Field(389, alias="LDAP_PORT")
    ldap_use_tls: bool = Field(False, alias="LDAP_USE_TLS")
    ldap_domain: str = Field("", alias="LDAP_DOMAIN")
    ldap_user_dn_format: str = Field("username@LDAPDOMAIN", alias="LDAP_USER_DN_FORMAT")

    # TLS
    ldap_tls_validate: bool = Field(True, alias="LDAP_TLS_VALIDATE")
    ldap_ca_cert_file: str = Field("", alias="LDAP_CA_CERT_FILE")

    # Timeouts
    ldap_connect_timeout_s: float = Field(5.0, alias="LDAP_CONNECT_TIMEOUT_S")
    ldap_receive_timeout_s: float = Field(10.0, alias="LDAP_RECEIVE_TIMEOUT_S")
    ldap_search_time_limit_ms: int = Field(10000, alias="LDAP_SEARCH_TIME_LIMIT_MS")

    # Preferred-server cache
    cache_backend: Literal["memory", "redis"] = Field("memory", alias="CACHE_BACKEND")
    redis_url: str = Field("redis://redis:6379/0", alias="REDIS_URL")

    tenants_file: str = Field("", alias="TENANTS_FILE")
    admin_token: str = Field("", alias="ADMIN_TOKEN")

    class Config:
        populate_by_name = True


@lru_cache(maxsize=1)
def get_env() -> EnvSettings:
    return EnvSettings()
