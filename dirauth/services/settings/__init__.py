"""Tenant directory settings: typed schema and the provider used by routers."""

from .schema import DirectorySettingsSchema
from .storage import TenantSettingsProvider, default_schema, load_tenants

__all__ = [
    "DirectorySettingsSchema",
    "TenantSettingsProvider",
    "default_schema",
    "load_tenants",
]
