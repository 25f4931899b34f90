"""
Registry Store model: scoped configuration overrides.
"""
from typing import Any
from sqlalchemy import String, ForeignKey, Integer, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from planbase.core.database.base import Base, TimestampMixin, generate_ulid


SETTINGS_SCOPES = ("system", "account", "user", "project")


class Setting(Base, TimestampMixin):
    """
    Override value for one config key at one scope.

    Scopes: system (``scope_id`` null), account (organization id), user,
    project. Every non-system row belongs to one organization, so user and
    project overrides never apply outside the organization they were written
    in. Rows are superseded in place with a version bump, never deleted.
    """
    __tablename__ = "settings"
    __table_args__ = (
        UniqueConstraint("key", "scope", "scope_id", "organization_id", name="uq_setting_key_scope"),
    )

    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
    key: Mapped[str] = mapped_column(String(150), nullable=False, index=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    scope: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    scope_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    organization_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("organizations.id", ondelete="CASCADE"),
        nullable=True,
        index=True
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    source: Mapped[str] = mapped_column(String(20), nullable=False, default="customized")
    updated_by_id: Mapped[str | None] = mapped_column(
        String(26),
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True
    )

    def __repr__(self) -> str:
        return f"<Setting(key={self.key!r}, scope={self.scope}, scope_id={self.scope_id}, version={self.version})>"

