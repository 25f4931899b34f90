"""
Organization-related dependency injection functions.
"""
from typing import Annotated
from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from planbase.core.database.engine import get_db
from planbase.features.users.models import User
from planbase.features.users.dependencies import get_current_user
from planbase.features.organizations.models import Organization, OrganizationMember


async def get_organization_by_id(
    organization_id: str,
    db: Annotated[AsyncSession, Depends(get_db)]
) -> Organization:
    """
    Get organization by ID or raise 404.
    """
    result = await db.execute(
        select(Organization).where(Organization.id == organization_id)
    )
    organization = result.scalar_one_or_none()

    if organization is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Organization not found"
        )

    return organization


async def get_membership(
    db: AsyncSession,
    user_id: str,
    organization_id: str
) -> OrganizationMember | None:
    """Active membership of a user in an organization, if any."""
    result = await db.execute(
        select(OrganizationMember).where(
            OrganizationMember.user_id == user_id,
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.status == "active",
        )
    )
    return result.scalar_one_or_none()


async def get_current_member(
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> OrganizationMember:
    """
    Membership of the current user in their current organization.

    Raises:
        HTTPException: 400 if no current organization is set,
            403 if the user is not a member of it
    """
    if user.current_organization_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No current organization set. Please switch to an organization first."
        )

    member = await get_membership(db, user.id, user.current_organization_id)
    if member is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not a member of this organization"
        )
    return member


async def get_current_admin_member(
    member: Annotated[OrganizationMember, Depends(get_current_member)]
) -> OrganizationMember:
    """
    Require the admin role in the current organization.

    Usage:
        @router.post("/packs/{pack_id}/apply")
        async def apply_pack(admin: OrganizationMember = Depends(get_current_admin_member)):
            ...
    """
    if member.role != "admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Organization admin privileges required",
        )
    return member
