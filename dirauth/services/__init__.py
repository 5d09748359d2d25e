"""Application service layer.

Stable import surface for routers:
    from dirauth.services import ...
"""

from .auth import AuthReason, AuthResult, DirectoryAuthenticator, authenticate, build_authenticator
from .settings import DirectorySettingsSchema, TenantSettingsProvider

__all__ = [
    "AuthReason",
    "AuthResult",
    "DirectoryAuthenticator",
    "DirectorySettingsSchema",
    "TenantSettingsProvider",
    "authenticate",
    "build_authenticator",
]
