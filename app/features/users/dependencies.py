"""
FastAPI dependencies for identifying the caller.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.features.users.auth import verify_jwt_token


security = HTTPBearer()


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> str:
    """
    Get the caller's user id from the bearer token.

    Whether the account exists and is active is decided by the access
    snapshot, not here.

    Usage:
        @router.get("/me/menu")
        async def my_menu(user_id: str = Depends(get_current_user_id)):
            ...
    """
    payload = verify_jwt_token(credentials.credentials)
    user_id = payload.get("id")

    if not isinstance(user_id, str) or not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )
    return user_id


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
