"""
Bearer token handling for the Common Ground API

Tokens are minted by the session service; this module only needs the
shared HS256 secret to check them. generate_access_token() mirrors the
session service's claims so tests and local tooling can mint tokens.

The signing secret is process-wide. server.main installs it once at
import time from COMMONGROUND_JWT_SECRET.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

_SECRET_KEY: Optional[str] = None
_ALGORITHM = "HS256"

_ACCESS_TOKEN_EXPIRY = timedelta(hours=1)


def init_jwt(secret: str) -> None:
    """Install the signing secret. May only happen once per process.

    Raises:
        ValueError: blank secret, or a secret is already installed
    """
    global _SECRET_KEY

    if not secret or not secret.strip():
        raise ValueError("Token signing secret is blank")

    if _SECRET_KEY is not None:
        raise ValueError("Token signing secret already installed")

    _SECRET_KEY = secret


def is_initialized() -> bool:
    return _SECRET_KEY is not None


def _require_secret() -> str:
    if _SECRET_KEY is None:
        raise ValueError("Token signing secret not installed; call init_jwt() first")
    return _SECRET_KEY


def generate_access_token(
    user_id: str,
    name: Optional[str] = None,
    expires_in: timedelta = _ACCESS_TOKEN_EXPIRY,
) -> str:
    claims = {
        "user_id": user_id,
        "type": "access",
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    if name:
        claims["name"] = name
    return jwt.encode(claims, _require_secret(), algorithm=_ALGORITHM)


def verify_token(token: str, expected_type: Optional[str] = None) -> Optional[dict]:
    """Decode a token, returning its claims or None.

    None covers bad signatures, expired tokens, malformed input and a
    "type" claim other than expected_type.
    """
    try:
        claims = jwt.decode(token, _require_secret(), algorithms=[_ALGORITHM])
    except JWTError:
        return None

    if expected_type and claims.get("type") != expected_type:
        return None
    return claims
