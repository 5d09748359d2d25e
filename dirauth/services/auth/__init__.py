from .backend import AuthReason, AuthResult, DirectoryAuthenticator, build_authenticator
from .ldap import authenticate

__all__ = ["AuthReason", "AuthResult", "DirectoryAuthenticator", "authenticate", "build_authenticator"]
