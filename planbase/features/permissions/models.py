"""
Permission Matrix storage: per-member module permissions, module views,
role view templates and the audit trail.

Database Schema:
- module_permissions: one row per (member, module, action) with ``allowed``
- module_views: per-member subview visibility and layout per module
- role_view_templates: organization-wide view config per (role, module),
  used when a member has no view of their own
- audit_logs: who changed what, when and from where
"""
from typing import Any, Dict
from sqlalchemy import Boolean, ForeignKey, Integer, JSON, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from planbase.core.database.base import Base, TimestampMixin, generate_ulid


class ModulePermission(Base, TimestampMixin):
    """
    Whether a member may perform one action on one module.

    A missing row means denied.
    """
    __tablename__ = "module_permissions"
    __table_args__ = (
        UniqueConstraint("member_id", "module", "action", name="uq_module_permission"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    organization_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    member_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organization_members.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    module: Mapped[str] = mapped_column(String(50), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    allowed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    def __repr__(self) -> str:
        return f"<ModulePermission(member_id={self.member_id}, {self.module}.{self.action}={self.allowed})>"


class ModuleView(Base, TimestampMixin):
    """Subview visibility and layout of one module for one member."""
    __tablename__ = "module_views"
    __table_args__ = (
        UniqueConstraint("member_id", "module", name="uq_module_view"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    organization_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    member_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organization_members.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    module: Mapped[str] = mapped_column(String(50), nullable=False)
    subviews_enabled: Mapped[Dict[str, bool] | None] = mapped_column(JSON, nullable=True)
    layout: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<ModuleView(member_id={self.member_id}, module={self.module})>"


class RoleViewTemplate(Base, TimestampMixin):
    """
    Organization-wide view config for every member holding ``role``.

    ``config`` has the shape ``{"subviewsEnabled": {...}, "layout": {...}}``.
    """
    __tablename__ = "role_view_templates"
    __table_args__ = (
        UniqueConstraint("organization_id", "role", "module", name="uq_role_view_template"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    organization_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    module: Mapped[str] = mapped_column(String(50), nullable=False)
    config: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<RoleViewTemplate(org={self.organization_id}, role={self.role}, module={self.module})>"


class AuditLog(Base, TimestampMixin):
    """
    Audit log for configuration and permission changes.

    Tracks who did what, when, and from where.
    """
    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    # Actor
    user_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )

    action: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    resource_id: Mapped[str | None] = mapped_column(String(150), nullable=True, index=True)

    organization_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    details: Mapped[Dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<AuditLog(id={self.id}, user_id={self.user_id}, action={self.action}, resource={self.resource_type})>"
