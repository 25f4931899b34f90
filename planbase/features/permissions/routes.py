"""
RBAC API routes.

Provides the caller's permission matrix and view context, access checks,
permission packs, role view templates and per-member permission management.
"""
from typing import Annotated, List, Optional
from fastapi import APIRouter, Depends, Request
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from planbase.core import config
from planbase.core.database.engine import get_db
from planbase.core.limiter import limiter
from planbase.features.config_registry.dependencies import get_config_service, get_resolve_context
from planbase.features.config_registry.resolver import ResolveContext
from planbase.features.config_registry.service import ConfigService
from planbase.features.organizations.dependencies import get_current_admin_member, get_current_member
from planbase.features.organizations.models import Organization, OrganizationMember
from planbase.features.permissions.access import (
    MembershipAccess,
    access_level,
    check_access,
    is_read_only,
)
from planbase.features.permissions.constants import RbacModule, RbacRole
from planbase.features.permissions.dependencies import (
    client_info,
    create_audit_log,
    get_current_access,
    get_permission_service,
)
from planbase.features.permissions.models import AuditLog
from planbase.features.permissions.packs import PERMISSION_PACKS
from planbase.features.permissions.schemas import (
    AccessCheckRequest,
    AccessCheckResponse,
    ApplyPackRequest,
    ApplyPackResponse,
    AuditLogListResponse,
    AuditLogResponse,
    BulkPermissionUpdate,
    ContextMembership,
    ContextOrganization,
    ContextUser,
    MemberPermissionsResponse,
    MemberSummary,
    ModuleViewResponse,
    ModuleViewSchema,
    MyPermissionsResponse,
    PermissionPackSchema,
    RbacContextResponse,
    RoleUpdate,
    RoleViewResponse,
    RoleViewUpdate,
)
from planbase.features.permissions.service import PermissionService
from planbase.features.users.dependencies import get_current_user
from planbase.features.users.models import User
from planbase.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Caller context
# ============================================================================

@router.get("/me", response_model=MyPermissionsResponse)
async def get_my_permissions(
    access: Annotated[MembershipAccess, Depends(get_current_access)]
):
    """Full permission matrix of the caller in their current organization."""
    return MyPermissionsResponse(member_id=access.member_id, role=access.role, permissions=access.permissions)


@router.get("/me/context", response_model=RbacContextResponse)
async def get_my_context(
    user: Annotated[User, Depends(get_current_user)],
    member: Annotated[OrganizationMember, Depends(get_current_member)],
    access: Annotated[MembershipAccess, Depends(get_current_access)],
    context: Annotated[ResolveContext, Depends(get_resolve_context)],
    config_service: Annotated[ConfigService, Depends(get_config_service)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """User, organization, membership, permissions, module views and feature flags in one call."""
    organization = await db.get(Organization, member.organization_id)
    return RbacContextResponse(
        user=ContextUser.model_validate(user),
        organization=ContextOrganization.model_validate(organization),
        membership=ContextMembership(id=member.id, role=member.role, status=member.status),
        permissions=access.permissions,
        module_views={module: ModuleViewSchema.from_config(view) for module, view in access.module_views.items()},
        feature_flags=await config_service.get_feature_flags(db, context),
    )


@router.post("/check", response_model=AccessCheckResponse)
async def check_module_access(
    check: AccessCheckRequest,
    access: Annotated[MembershipAccess, Depends(get_current_access)],
    context: Annotated[ResolveContext, Depends(get_resolve_context)],
    config_service: Annotated[ConfigService, Depends(get_config_service)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Access Guard decision for a module and optional subview."""
    flags = await config_service.get_feature_flags(db, context)
    decision = check_access(access, check.module, check.subview_key, flags)
    return AccessCheckResponse(
        module=decision.module,
        subview_key=decision.subview_key,
        allowed=decision.allowed,
        outcome=decision.outcome,
        read_only=is_read_only(access, check.module),
        access_level=access_level(access, check.module),
    )


@router.get("/module-views/{module}", response_model=ModuleViewSchema)
async def get_my_module_view(
    module: RbacModule,
    access: Annotated[MembershipAccess, Depends(get_current_access)]
):
    """Effective view config of a module for the caller (empty when none is set)."""
    return ModuleViewSchema.from_config(access.module_views.get(module.value))


# ============================================================================
# Permission packs
# ============================================================================

@router.get("/packs", response_model=List[PermissionPackSchema])
async def list_permission_packs(
    member: Annotated[OrganizationMember, Depends(get_current_member)]
):
    """Catalog of permission packs."""
    return [PermissionPackSchema.from_pack(pack) for pack in PERMISSION_PACKS]


@router.post("/packs/{pack_id}/apply", response_model=ApplyPackResponse)
@limiter.limit(config.RATE_LIMIT_WRITES)
async def apply_permission_pack(
    request: Request,
    pack_id: str,
    body: ApplyPackRequest,
    admin: Annotated[OrganizationMember, Depends(get_current_admin_member)],
    service: Annotated[PermissionService, Depends(get_permission_service)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Apply a pack to a member of the admin's organization (404 on unknown pack or member)."""
    matrix = await service.apply_pack(db, admin.organization_id, pack_id, body.member_id)
    await create_audit_log(
        db,
        user_id=admin.user_id,
        action="apply_pack",
        resource_type="permission_pack",
        resource_id=pack_id,
        organization_id=admin.organization_id,
        details={"member_id": body.member_id},
        **client_info(request),
    )
    return ApplyPackResponse(pack_id=pack_id, member_id=body.member_id, permissions=matrix)


# ============================================================================
# Role view templates
# ============================================================================

@router.get("/role-views/{role}/{module}", response_model=Optional[RoleViewResponse])
async def get_role_view(
    role: RbacRole,
    module: RbacModule,
    member: Annotated[OrganizationMember, Depends(get_current_member)],
    service: Annotated[PermissionService, Depends(get_permission_service)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """View template of a role for a module, or null."""
    return await service.get_role_view_template(db, member.organization_id, role.value, module.value)


@router.put("/role-views/{role}/{module}", response_model=RoleViewResponse)
@limiter.limit(config.RATE_LIMIT_WRITES)
async def update_role_view(
    request: Request,
    role: RbacRole,
    module: RbacModule,
    body: RoleViewUpdate,
    admin: Annotated[OrganizationMember, Depends(get_current_admin_member)],
    service: Annotated[PermissionService, Depends(get_permission_service)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Upsert a role view template; ``applyToAll`` also overwrites every member of that role."""
    view_config = body.config.model_dump(by_alias=True, exclude_none=True)
    template = await service.update_role_view_template(
        db, admin.organization_id, role.value, module.value, view_config, apply_to_all=body.apply_to_all
    )
    await create_audit_log(
        db,
        user_id=admin.user_id,
        action="update",
        resource_type="role_view",
        resource_id=template.id,
        organization_id=admin.organization_id,
        details={"role": role.value, "module": module.value, "apply_to_all": body.apply_to_all},
        **client_info(request),
    )
    return template


# ============================================================================
# Members
# ============================================================================

@router.get("/members", response_model=List[MemberSummary])
async def list_members(
    member: Annotated[OrganizationMember, Depends(get_current_member)],
    service: Annotated[PermissionService, Depends(get_permission_service)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Members of the caller's current organization."""
    return await service.list_members(db, member.organization_id)


@router.put("/members/{member_id}/module-views/{module}", response_model=ModuleViewResponse)
@limiter.limit(config.RATE_LIMIT_WRITES)
async def set_member_module_view(
    request: Request,
    member_id: str,
    module: RbacModule,
    body: ModuleViewSchema,
    admin: Annotated[OrganizationMember, Depends(get_current_admin_member)],
    service: Annotated[PermissionService, Depends(get_permission_service)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Per-member view override for a module."""
    target = await service.get_member(db, admin.organization_id, member_id)
    view = await service.set_module_view(
        db, target, module.value, subviews_enabled=body.subviews_enabled, layout=body.layout
    )
    await create_audit_log(
        db,
        user_id=admin.user_id,
        action="update",
        resource_type="module_view",
        resource_id=view.id,
        organization_id=admin.organization_id,
        details={"member_id": member_id, "module": module.value},
        **client_info(request),
    )
    return view


@router.put("/members/{member_id}/permissions", response_model=MemberPermissionsResponse)
@limiter.limit(config.RATE_LIMIT_WRITES)
async def update_member_permissions(
    request: Request,
    member_id: str,
    body: BulkPermissionUpdate,
    admin: Annotated[OrganizationMember, Depends(get_current_admin_member)],
    service: Annotated[PermissionService, Depends(get_permission_service)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Set individual permission cells of a member."""
    target = await service.get_member(db, admin.organization_id, member_id)
    updates = [(cell.module.value, cell.action.value, cell.allowed) for cell in body.updates]
    matrix = await service.bulk_update_permissions(db, target, updates)
    await create_audit_log(
        db,
        user_id=admin.user_id,
        action="update",
        resource_type="permission",
        resource_id=member_id,
        organization_id=admin.organization_id,
        details={"updates": [f"{m}.{a}={v}" for m, a, v in updates]},
        **client_info(request),
    )
    return MemberPermissionsResponse(member_id=member_id, permissions=matrix)


@router.patch("/members/{member_id}/role", response_model=MemberPermissionsResponse)
@limiter.limit(config.RATE_LIMIT_WRITES)
async def change_member_role(
    request: Request,
    member_id: str,
    body: RoleUpdate,
    admin: Annotated[OrganizationMember, Depends(get_current_admin_member)],
    service: Annotated[PermissionService, Depends(get_permission_service)],
    db: Annotated[AsyncSession, Depends(get_db)]
):
    """Change a member's role; their permissions are reset to the new role's defaults."""
    target = await service.get_member(db, admin.organization_id, member_id)
    previous = target.role
    await service.update_member_role(db, target, body.role.value)
    await create_audit_log(
        db,
        user_id=admin.user_id,
        action="change_role",
        resource_type="member",
        resource_id=member_id,
        organization_id=admin.organization_id,
        details={"from": previous, "to": body.role.value},
        **client_info(request),
    )
    matrix = await service.get_matrix(db, admin.organization_id, member_id)
    return MemberPermissionsResponse(member_id=member_id, permissions=matrix)


# ============================================================================
# Audit logs
# ============================================================================

@router.get("/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    admin: Annotated[OrganizationMember, Depends(get_current_admin_member)],
    db: Annotated[AsyncSession, Depends(get_db)],
    skip: int = 0,
    limit: int = 50,
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
):
    """Audit logs of the admin's organization with optional filtering."""
    stmt = select(AuditLog).where(AuditLog.organization_id == admin.organization_id)
    if user_id:
        stmt = stmt.where(AuditLog.user_id == user_id)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if resource_type:
        stmt = stmt.where(AuditLog.resource_type == resource_type)

    count_stmt = select(func.count()).select_from(stmt.subquery())
    total = (await db.execute(count_stmt)).scalar() or 0

    stmt = stmt.order_by(AuditLog.created_at.desc()).offset(skip).limit(limit)
    result = await db.execute(stmt)
    logs = result.scalars().all()

    pages = (total + limit - 1) // limit if limit > 0 else 0
    page = (skip // limit) + 1 if limit > 0 else 1

    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(entry) for entry in logs],
        total=total,
        page=page,
        page_size=limit,
        pages=pages
    )
