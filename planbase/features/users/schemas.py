"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from pydantic import EmailStr, Field

from planbase.core.schemas import CamelModel


class UserUpdate(CamelModel):
    """Schema for updating user information."""
    name: str | None = Field(None, min_length=1, max_length=255)
    avatar_url: str | None = Field(None, max_length=500)


class UserResponse(CamelModel):
    """Schema for user responses."""
    id: str
    email: EmailStr
    name: str
    avatar_url: str | None = None
    is_active: bool
    current_organization_id: str | None = None
    last_login_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

