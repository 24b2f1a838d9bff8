"""Userland authentication module"""

from userland.auth.jwt import (
    init_jwt,
    is_initialized,
    generate_access_token,
    verify_token,
)
from userland.auth.models import User

__all__ = [
    "User",
    "init_jwt",
    "is_initialized",
    "generate_access_token",
    "verify_token",
]
