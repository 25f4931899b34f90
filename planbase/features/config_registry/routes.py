"""
Config registry API routes.
"""
from typing import Annotated, Dict
from fastapi import APIRouter, Depends, HTTPException, Path, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from planbase.core import config
from planbase.core.database.engine import get_db
from planbase.core.limiter import limiter
from planbase.features.config_registry.dependencies import get_config_service, get_resolve_context
from planbase.features.config_registry.resolver import ResolveContext
from planbase.features.config_registry.schemas import ConfigResponse, SettingResponse, SettingUpdate
from planbase.features.config_registry.service import ConfigService
from planbase.features.organizations.dependencies import get_current_admin_member, get_membership
from planbase.features.organizations.models import OrganizationMember
from planbase.features.permissions.dependencies import create_audit_log
from planbase.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


@router.get("", response_model=ConfigResponse)
async def get_config(
    context: Annotated[ResolveContext, Depends(get_resolve_context)],
    service: Annotated[ConfigService, Depends(get_config_service)],
    db: Annotated[AsyncSession, Depends(get_db)],
    refresh: bool = False,
):
    """Effective configuration for the caller's organization, user and optional project."""
    resolved = await service.resolve(db, context, refresh=refresh)
    return ConfigResponse.from_resolved(resolved)


@router.get("/feature-flags", response_model=Dict[str, bool])
async def get_feature_flags(
    context: Annotated[ResolveContext, Depends(get_resolve_context)],
    service: Annotated[ConfigService, Depends(get_config_service)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """``{flag: enabled}`` for every feature flag of the effective configuration."""
    return await service.get_feature_flags(db, context)


@router.put("/{key}", response_model=SettingResponse)
@limiter.limit(config.RATE_LIMIT_WRITES)
async def update_setting(
    request: Request,
    update: SettingUpdate,
    admin: Annotated[OrganizationMember, Depends(get_current_admin_member)],
    service: Annotated[ConfigService, Depends(get_config_service)],
    db: Annotated[AsyncSession, Depends(get_db)],
    key: str = Path(..., min_length=1, max_length=150, pattern=r"^[A-Za-z0-9_]+(\.[A-Za-z0-9_]+)*$"),
):
    """
    Write a Registry Store override (organization admin only).

    Overrides always land in the admin's current organization; a user
    override must target an active member of it.
    """
    if update.scope == "account":
        scope_id = admin.organization_id
    elif update.scope == "user":
        scope_id = update.scope_id or admin.user_id
        if await get_membership(db, scope_id, admin.organization_id) is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="User is not a member of this organization"
            )
    else:
        scope_id = update.scope_id

    setting = await service.update_setting(
        db, key, update.value, update.scope, scope_id,
        organization_id=admin.organization_id,
        updated_by=admin.user_id,
    )
    await create_audit_log(
        db,
        user_id=admin.user_id,
        action="update",
        resource_type="setting",
        resource_id=setting.id,
        organization_id=admin.organization_id,
        details={"key": key, "scope": update.scope, "scope_id": scope_id, "version": setting.version},
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return setting
