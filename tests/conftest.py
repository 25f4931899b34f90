"""Shared fixtures: in-memory database, seeded organization and an API client."""

from __future__ import annotations

from typing import Dict

import httpx
import pytest
from fastapi import HTTPException
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from planbase.core.cache import TTLCache
from planbase.core.database.engine import get_db, init_db
from planbase.features.config_registry.service import ConfigService
from planbase.features.organizations.models import Organization, OrganizationMember
from planbase.features.permissions.service import PermissionService
from planbase.features.users.dependencies import get_current_user
from planbase.features.users.models import User


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(engine) -> AsyncSession:
    sessionmaker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with sessionmaker() as session:
        yield session


@pytest.fixture
def permission_service() -> PermissionService:
    return PermissionService(cache=TTLCache(300))


@pytest.fixture
def config_service() -> ConfigService:
    return ConfigService(strapi=None, cache=TTLCache(60))


async def _add_user(db: AsyncSession, key: str) -> User:
    user = User(appwrite_id=f"aw-{key}", email=f"{key}@example.com", name=key.title())
    db.add(user)
    await db.flush()
    return user


@pytest_asyncio.fixture
async def org(db: AsyncSession, permission_service: PermissionService) -> Dict[str, object]:
    """
    One organization with an admin, a member and a guest, each seeded with
    their role's default permissions.
    """
    organization = Organization(name="Acme")
    db.add(organization)
    await db.flush()

    seeded: Dict[str, object] = {"organization": organization}
    for role in ("admin", "member", "guest"):
        user = await _add_user(db, role)
        user.current_organization_id = organization.id
        member = OrganizationMember(organization_id=organization.id, user_id=user.id, role=role)
        db.add(member)
        await db.flush()
        await permission_service.initialize_default_permissions(db, member)
        seeded[f"{role}_user"] = user
        seeded[role] = member

    await db.commit()
    for value in seeded.values():
        await db.refresh(value)
    return seeded


class Identity:
    """Holder for the user returned by the overridden auth dependency."""

    def __init__(self) -> None:
        self.user: User | None = None


@pytest_asyncio.fixture
async def identity() -> Identity:
    return Identity()


@pytest_asyncio.fixture
async def client(db, identity, config_service, permission_service):
    """API client bound to the test session; set ``identity.user`` to authenticate."""
    from planbase.core.limiter import limiter
    from planbase.main import app

    async def override_get_db():
        try:
            yield db
            await db.commit()
        except Exception:
            await db.rollback()
            raise

    async def override_get_current_user():
        if identity.user is None:
            raise HTTPException(status_code=401, detail="Not authenticated")
        return identity.user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.state.config_service = config_service
    app.state.permission_service = permission_service
    limiter.reset()

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http

    app.dependency_overrides.clear()
