"""
User feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from planbase.core.database.engine import get_db
from planbase.features.users.models import User
from planbase.features.users.schemas import UserResponse, UserUpdate
from planbase.features.users.dependencies import get_current_user


router = APIRouter(tags=["users"])


@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    user: Annotated[User, Depends(get_current_user)]
):
    """Get current authenticated user's profile."""
    return user


@router.patch("/me", response_model=UserResponse)
async def update_current_user_profile(
    update_data: UserUpdate,
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Update current user's profile."""
    if update_data.name is not None:
        user.name = update_data.name
    if update_data.avatar_url is not None:
        user.avatar_url = update_data.avatar_url

    await db.flush()
    await db.refresh(user)
    return user
