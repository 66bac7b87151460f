"""
Bearer token verification.
"""
import jwt
from fastapi import HTTPException, status

from app.core import config


def verify_jwt_token(token: str) -> dict:
    """
    Verify an HS256 access token and return its payload.

    Args:
        token: JWT token from Authorization header

    Returns:
        Decoded JWT payload; the user id is carried in the "id" claim

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        return jwt.decode(
            token,
            config.JWT_SECRET,
            algorithms=[config.JWT_ALGORITHM],
            options={"require": ["id"]},
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )
