"""FastAPI Dependencies

Centralized dependency injection for reuse across all route modules.
Provides type-safe, testable access to shared resources.
"""

from fastapi import HTTPException, Request, status

from commonground.service import CommonGroundService
from database.db import Database
from userland.auth import User, is_initialized, verify_token


def get_db(request: Request) -> Database:
    """Dependency to get shared database instance from app state

    Usage in routes:
        @router.get("/endpoint")
        async def endpoint(db: Database = Depends(get_db)):
            group = await db.groups.get_group(group_id)
            return group
    """
    return request.app.state.db


def get_service(request: Request) -> CommonGroundService:
    """Dependency to get the shared Common Ground service from app state"""
    return request.app.state.service


async def get_current_user(request: Request) -> User:
    """
    FastAPI dependency to extract and validate current user from JWT token.

    Expects an access token in the Authorization header:
        Authorization: Bearer <token>

    Returns:
        User with id (user_id claim) and optional display name (name claim)

    Raises:
        HTTPException 401 if not authenticated or token invalid
    """
    payload = None

    auth_header = request.headers.get("authorization")
    if auth_header and auth_header.startswith("Bearer ") and is_initialized():
        access_token = auth_header.replace("Bearer ", "", 1)
        payload = verify_token(access_token, expected_type="access")

    user_id = payload.get("user_id") if payload else None
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="You must be logged in."
        )

    return User(id=str(user_id), name=payload.get("name"))
