"""
FastAPI dependencies for authentication.
"""
from typing import Annotated
from datetime import datetime, timezone
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from planbase.core.database.engine import get_db
from planbase.features.users.models import User
from planbase.features.users.auth import verify_jwt_token, get_appwrite_user
from planbase.utils import get_logger


log = get_logger(__name__)
security = HTTPBearer()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> User:
    """
    Get the current authenticated user from JWT token.

    This dependency:
    1. Extracts JWT from Authorization header
    2. Decodes it and reads the Appwrite ``userId`` claim
    3. Looks up or creates the user in the local database
    4. Updates last_login_at timestamp

    Usage:
        @router.get("/me")
        async def get_me(user: User = Depends(get_current_user)):
            return user
    """
    payload = verify_jwt_token(credentials.credentials)
    appwrite_user_id = payload.get("userId")

    if not appwrite_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
        )

    result = await db.execute(
        select(User).where(User.appwrite_id == appwrite_user_id)
    )
    user = result.scalar_one_or_none()

    if user is None:
        appwrite_user = await get_appwrite_user(appwrite_user_id)
        user = User(
            appwrite_id=appwrite_user_id,
            email=appwrite_user.get("email", ""),
            name=appwrite_user.get("name", "Unknown"),
        )
        db.add(user)
        log.info("Created local user for appwrite id %s", appwrite_user_id)

    user.last_login_at = datetime.now(timezone.utc)
    await db.flush()
    await db.refresh(user)

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated",
        )

    return user


def get_authorization_header(request) -> str:
    """
    Extract authorization header for rate limiting.
    Used with slowapi Limiter.
    """
    auth = request.headers.get("Authorization", "")
    return auth or "anonymous"
