"""JWT authentication and authorization module."""

from flowlens.auth.dependencies import AuthenticatedUser, get_current_user, require_roles
from flowlens.auth.jwt import create_access_token, decode_access_token

__all__ = [
    "AuthenticatedUser",
    "create_access_token",
    "decode_access_token",
    "get_current_user",
    "require_roles",
]
