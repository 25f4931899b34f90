"""
Organization feature routes.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from planbase.core.database.engine import get_db
from planbase.features.users.models import User
from planbase.features.users.dependencies import get_current_user
from planbase.features.organizations.models import Organization, OrganizationMember
from planbase.features.organizations.schemas import (
    MemberCreate,
    MemberResponse,
    OrganizationCreate,
    OrganizationResponse,
)
from planbase.features.organizations.dependencies import (
    get_current_admin_member,
    get_membership,
    get_organization_by_id,
)
from planbase.features.permissions.dependencies import client_info, create_audit_log, get_permission_service
from planbase.features.permissions.service import PermissionService
from planbase.utils import get_logger


log = get_logger(__name__)
router = APIRouter(tags=["organizations"])


async def _member_count(db: AsyncSession, organization_id: str) -> int:
    result = await db.execute(
        select(func.count()).select_from(OrganizationMember).where(
            OrganizationMember.organization_id == organization_id
        )
    )
    return result.scalar() or 0


@router.post("", response_model=OrganizationResponse, status_code=status.HTTP_201_CREATED)
async def create_organization(
    org_data: OrganizationCreate,
    user: Annotated[User, Depends(get_current_user)],
    service: Annotated[PermissionService, Depends(get_permission_service)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Create an organization. The creator becomes its admin and it becomes their current organization."""
    organization = Organization(name=org_data.name, plan=org_data.plan)
    db.add(organization)
    await db.flush()

    member = OrganizationMember(organization_id=organization.id, user_id=user.id, role="admin")
    db.add(member)
    await db.flush()
    await service.initialize_default_permissions(db, member)

    user.current_organization_id = organization.id
    await db.flush()
    await db.refresh(organization)
    log.info("Organization %s created by user %s", organization.id, user.id)

    response = OrganizationResponse.model_validate(organization)
    response.member_count = 1
    return response


@router.get("/my", response_model=list[OrganizationResponse])
async def get_my_organizations(
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Organizations the current user is an active member of."""
    result = await db.execute(
        select(Organization)
        .join(OrganizationMember, OrganizationMember.organization_id == Organization.id)
        .where(
            OrganizationMember.user_id == user.id,
            OrganizationMember.status == "active",
            Organization.is_active == True
        )
        .order_by(Organization.name)
    )
    responses = []
    for organization in result.scalars().all():
        response = OrganizationResponse.model_validate(organization)
        response.member_count = await _member_count(db, organization.id)
        responses.append(response)
    return responses


@router.post("/{organization_id}/switch", response_model=dict)
async def switch_organization(
    organization: Annotated[Organization, Depends(get_organization_by_id)],
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Switch the current organization (the ``accountId`` of config resolution)."""
    if await get_membership(db, user.id, organization.id) is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not a member of this organization"
        )

    user.current_organization_id = organization.id
    await db.flush()

    return {
        "message": "Organization switched successfully",
        "currentOrganizationId": organization.id,
        "currentOrganizationName": organization.name,
    }


@router.post(
    "/{organization_id}/members",
    response_model=MemberResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_member(
    request: Request,
    organization_id: str,
    member_data: MemberCreate,
    admin: Annotated[OrganizationMember, Depends(get_current_admin_member)],
    service: Annotated[PermissionService, Depends(get_permission_service)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Add an existing user to the organization and seed their role's default permissions (admin only)."""
    if organization_id != admin.organization_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Organization admin privileges required"
        )

    result = await db.execute(select(User).where(User.id == member_data.user_id))
    if result.scalar_one_or_none() is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    existing = await db.execute(
        select(OrganizationMember).where(
            OrganizationMember.organization_id == organization_id,
            OrganizationMember.user_id == member_data.user_id,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User is already a member of this organization"
        )

    member = OrganizationMember(
        organization_id=organization_id,
        user_id=member_data.user_id,
        role=member_data.role.value,
    )
    db.add(member)
    await db.flush()
    await service.initialize_default_permissions(db, member)
    await db.refresh(member)

    await create_audit_log(
        db,
        user_id=admin.user_id,
        action="add_member",
        resource_type="member",
        resource_id=member.id,
        organization_id=organization_id,
        details={"user_id": member_data.user_id, "role": member.role},
        **client_info(request),
    )
    return member
