"""
Database engine configuration and session management.

SQLite (async with aiosqlite) by default; set DATABASE_URL to a
postgresql+asyncpg URL to run against PostgreSQL, no code changes needed.
"""
from collections.abc import AsyncGenerator, Callable
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from planbase.core import config


def build_engine(url: str) -> AsyncEngine:
    # NullPool for SQLite to avoid connection pool issues
    kwargs = {"poolclass": NullPool} if url.startswith("sqlite") else {}
    return create_async_engine(url, echo=False, future=True, **kwargs)


engine = build_engine(config.SQLALCHEMY_DATABASE_URL)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions.

    The session commits when the route returns and rolls back if it raises,
    so every write performed by one request lands in a single transaction.

    Usage in FastAPI routes:
        @router.get("/items")
        async def get_items(db: AsyncSession = Depends(get_db)):
            result = await db.execute(select(Item))
            return result.scalars().all()
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


async def init_db(target: AsyncEngine | None = None):
    """
    Create all tables. Called on application startup and by the test fixtures.
    """
    from planbase.core.database.base import Base

    # Import all models to ensure they're registered with SQLAlchemy
    from planbase.features.users.models import User  # noqa: F401
    from planbase.features.organizations.models import Organization, OrganizationMember  # noqa: F401
    from planbase.features.config_registry.models import Setting  # noqa: F401
    from planbase.features.permissions.models import (  # noqa: F401
        ModulePermission, ModuleView, RoleViewTemplate, AuditLog
    )

    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ============================================================================
# Commit hooks
# ============================================================================

AFTER_COMMIT_KEY = "after_commit"


def on_commit(db: AsyncSession, callback: Callable[[], None]) -> None:
    """
    Run ``callback`` once the session's current transaction commits.

    Callbacks are dropped on rollback. Services use this to invalidate their
    caches only for writes that actually reached storage.
    """
    db.info.setdefault(AFTER_COMMIT_KEY, []).append(callback)


def has_uncommitted_writes(db: AsyncSession) -> bool:
    """True while the session holds writes registered with ``on_commit``."""
    return bool(db.info.get(AFTER_COMMIT_KEY))


@event.listens_for(Session, "after_commit")
def _run_commit_hooks(session: Session) -> None:
    for callback in session.info.pop(AFTER_COMMIT_KEY, []):
        callback()


@event.listens_for(Session, "after_rollback")
def _drop_commit_hooks(session: Session) -> None:
    session.info.pop(AFTER_COMMIT_KEY, None)
