"""
Pydantic schemas for the RBAC API: matrices, module views, packs,
access checks and audit logs.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import Field

from planbase.core.schemas import CamelModel
from planbase.features.permissions.access import AccessLevel, AccessOutcome, ModuleViewConfig
from planbase.features.permissions.constants import RbacAction, RbacModule, RbacRole
from planbase.features.permissions.packs import PermissionPack


PermissionMatrix = Dict[str, Dict[str, bool]]


class MyPermissionsResponse(CamelModel):
    member_id: str
    role: RbacRole
    permissions: PermissionMatrix


class ModuleViewSchema(CamelModel):
    """``{subviewsEnabled, layout}`` of one module."""
    subviews_enabled: Optional[Dict[str, bool]] = None
    layout: Optional[Dict[str, Any]] = None

    @classmethod
    def from_config(cls, view: Optional[ModuleViewConfig]) -> "ModuleViewSchema":
        if view is None:
            return cls()
        return cls(
            subviews_enabled=dict(view.subviews_enabled) if view.subviews_enabled is not None else None,
            layout=dict(view.layout) if view.layout is not None else None,
        )


class ContextUser(CamelModel):
    id: str
    email: str
    name: str
    current_organization_id: Optional[str] = None


class ContextOrganization(CamelModel):
    id: str
    name: str
    plan: Optional[str] = None


class ContextMembership(CamelModel):
    id: str
    role: RbacRole
    status: str


class RbacContextResponse(CamelModel):
    """Everything the frontend needs to render guarded views."""
    user: ContextUser
    organization: ContextOrganization
    membership: ContextMembership
    permissions: PermissionMatrix
    module_views: Dict[str, ModuleViewSchema]
    feature_flags: Dict[str, bool]


class AccessCheckRequest(CamelModel):
    module: RbacModule
    subview_key: Optional[str] = Field(None, max_length=100)


class AccessCheckResponse(CamelModel):
    module: str
    subview_key: Optional[str] = None
    allowed: bool
    outcome: AccessOutcome
    read_only: bool
    access_level: AccessLevel


class PermissionPackEntrySchema(CamelModel):
    module: str
    actions: List[str]
    subviews: List[str] = []


class PermissionPackSchema(CamelModel):
    id: str
    name: str
    name_en: str
    description: str
    description_en: str
    icon: str
    version: int
    permissions: List[PermissionPackEntrySchema]
    default_subviews: Dict[str, List[str]]

    @classmethod
    def from_pack(cls, pack: PermissionPack) -> "PermissionPackSchema":
        return cls(
            id=pack.id,
            name=pack.name,
            name_en=pack.name_en,
            description=pack.description,
            description_en=pack.description_en,
            icon=pack.icon,
            version=pack.version,
            permissions=[
                PermissionPackEntrySchema(
                    module=entry.module, actions=list(entry.actions), subviews=list(entry.subviews)
                )
                for entry in pack.permissions
            ],
            default_subviews={module: list(keys) for module, keys in pack.default_subviews.items()},
        )


class ApplyPackRequest(CamelModel):
    member_id: str


class ApplyPackResponse(CamelModel):
    pack_id: str
    member_id: str
    permissions: PermissionMatrix


class RoleViewUpdate(CamelModel):
    config: ModuleViewSchema
    apply_to_all: bool = False


class RoleViewResponse(CamelModel):
    id: str
    organization_id: str
    role: RbacRole
    module: str
    config: Dict[str, Any]
    updated_at: datetime


class ModuleViewResponse(CamelModel):
    id: str
    member_id: str
    module: str
    subviews_enabled: Optional[Dict[str, bool]] = None
    layout: Optional[Dict[str, Any]] = None
    updated_at: datetime


class PermissionCellUpdate(CamelModel):
    module: RbacModule
    action: RbacAction
    allowed: bool


class BulkPermissionUpdate(CamelModel):
    updates: List[PermissionCellUpdate] = Field(..., min_length=1)


class MemberPermissionsResponse(CamelModel):
    member_id: str
    permissions: PermissionMatrix


class RoleUpdate(CamelModel):
    role: RbacRole


class MemberSummary(CamelModel):
    id: str
    user_id: str
    role: RbacRole
    status: str
    created_at: datetime


class AuditLogResponse(CamelModel):
    """Schema for audit log response."""
    id: str
    user_id: Optional[str]
    action: str
    resource_type: str
    resource_id: Optional[str]
    organization_id: Optional[str]
    details: Optional[Dict[str, Any]]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime


class AuditLogListResponse(CamelModel):
    """Schema for paginated audit log list."""
    items: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
    pages: int
