"""
Organization and membership models.

An organization is the tenant: its id is the ``accountId`` used by the
config registry. Users join organizations through OrganizationMember rows,
which carry the RBAC role.
"""
from sqlalchemy import String, ForeignKey, Boolean, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from planbase.core.database.base import Base, TimestampMixin, generate_ulid


class Organization(Base, TimestampMixin):
    """
    Organization (account) owning permission matrices, module views and
    account-scoped configuration overrides.
    """
    __tablename__ = "organizations"

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    plan: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    members: Mapped[list["OrganizationMember"]] = relationship(
        "OrganizationMember",
        back_populates="organization",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<Organization(id={self.id}, name={self.name!r})>"


class OrganizationMember(Base, TimestampMixin):
    """
    Membership of a user in an organization.

    One row per (organization, user). ``role`` is one of admin, member, guest.
    """
    __tablename__ = "organization_members"
    __table_args__ = (
        UniqueConstraint("organization_id", "user_id", name="uq_organization_member"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    organization_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="member")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    organization: Mapped["Organization"] = relationship(
        "Organization",
        back_populates="members",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        return f"<OrganizationMember(id={self.id}, org_id={self.organization_id}, user_id={self.user_id}, role={self.role})>"
