"""
Pydantic schemas for organization-related requests and responses.
"""
from datetime import datetime
from pydantic import Field

from planbase.core.schemas import CamelModel
from planbase.features.permissions.constants import RbacRole


class OrganizationCreate(CamelModel):
    """Schema for creating a new organization. The creator becomes its admin."""
    name: str = Field(..., min_length=1, max_length=255)
    plan: str | None = Field(None, max_length=50)


class OrganizationResponse(CamelModel):
    id: str
    name: str
    plan: str | None = None
    is_active: bool
    created_at: datetime
    member_count: int = 0


class MemberCreate(CamelModel):
    """Schema for adding an existing user to an organization."""
    user_id: str
    role: RbacRole = RbacRole.MEMBER


class MemberResponse(CamelModel):
    id: str
    organization_id: str
    user_id: str
    role: RbacRole
    status: str
    created_at: datetime
