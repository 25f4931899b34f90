"""
SQLAlchemy declarative base and common model utilities.

All SQLAlchemy models should inherit from Base.
"""
from datetime import datetime
from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
import ulid


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ulid.new())


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    Usage:
        from planbase.core.database.base import Base

        class Setting(Base):
            __tablename__ = "settings"

            id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)
            key: Mapped[str] = mapped_column(String(150))
    """
    pass


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.

    Usage:
        class Organization(Base, TimestampMixin):
            __tablename__ = "organizations"
            id: Mapped[str] = mapped_column(String(26), primary_key=True)
    """
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
