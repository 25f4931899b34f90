"""
Permission dependencies for route protection and audit logging helpers.
"""
from typing import Annotated, Any, Dict, Optional
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from planbase.core.database.engine import get_db
from planbase.features.config_registry.dependencies import get_config_service, get_resolve_context
from planbase.features.config_registry.resolver import ResolveContext
from planbase.features.config_registry.service import ConfigService
from planbase.features.organizations.dependencies import get_current_member
from planbase.features.organizations.models import OrganizationMember
from planbase.features.permissions.access import MembershipAccess, can, check_access
from planbase.features.permissions.models import AuditLog
from planbase.features.permissions.service import PermissionService
from planbase.utils import get_logger


log = get_logger(__name__)


def get_permission_service(request: Request) -> PermissionService:
    """The application's permission service (holds the matrix cache)."""
    return request.app.state.permission_service


async def get_current_access(
    member: Annotated[OrganizationMember, Depends(get_current_member)],
    service: Annotated[PermissionService, Depends(get_permission_service)],
    db: Annotated[AsyncSession, Depends(get_db)]
) -> MembershipAccess:
    """Permission matrix and effective module views of the caller's membership."""
    return await service.load_membership_access(db, member)


def require_module_access(module: str, action: str = "read", subview_key: Optional[str] = None):
    """
    FastAPI dependency requiring access to a module (and optionally a subview).

    Usage:
        @router.get("/crm/kpis")
        async def kpis(access: MembershipAccess = Depends(require_module_access("crm", subview_key="crm.kpis"))):
            ...

    Raises:
        HTTPException: 403 with the denial outcome as detail
    """
    async def access_dependency(
        access: Annotated[MembershipAccess, Depends(get_current_access)],
        context: Annotated[ResolveContext, Depends(get_resolve_context)],
        config_service: Annotated[ConfigService, Depends(get_config_service)],
        db: Annotated[AsyncSession, Depends(get_db)]
    ) -> MembershipAccess:
        flags = await config_service.get_feature_flags(db, context)
        decision = check_access(access, module, subview_key, flags)
        if not decision.allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=decision.outcome.value
            )
        if action != "read" and not can(access, module, action):
            log.debug("Denied %s on %s for member %s", action, module, access.member_id)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="access_denied"
            )
        return access

    return access_dependency


def client_info(request: Request) -> Dict[str, Optional[str]]:
    """IP address and user agent for audit entries."""
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


async def create_audit_log(
    db: AsyncSession,
    user_id: Optional[str],
    action: str,
    resource_type: str,
    resource_id: Optional[str] = None,
    organization_id: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None
) -> AuditLog:
    """
    Record an audit entry in the current transaction.

    Args:
        db: Database session
        user_id: User performing the action
        action: Action performed (e.g., "update", "apply_pack", "change_role")
        resource_type: Type of resource (e.g., "setting", "permission", "module_view")
        resource_id: ID of the resource
        organization_id: Organization context
        details: Additional details
        ip_address: Client IP address
        user_agent: Client user agent
    """
    audit_log = AuditLog(
        user_id=user_id,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        organization_id=organization_id,
        details=details,
        ip_address=ip_address,
        user_agent=user_agent
    )
    db.add(audit_log)
    await db.flush()

    log.info(
        f"Audit: user={user_id} action={action} resource={resource_type}:{resource_id} org={organization_id}"
    )
    return audit_log
