"""
Seed script to populate a demo organization.

Run this script after database initialization to create:
- One demo organization with an admin, a member and a guest
- Role default permissions for each membership
- A guest view template hiding the roadmap planning subviews
- A system-level override of the task priorities

Existing rows are left untouched, so the script can be run repeatedly.

Usage:
    uv run python -m scripts.seed_demo
"""
import asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from planbase.core.database.engine import get_db, init_db
from planbase.features.config_registry.service import ConfigService
from planbase.features.organizations.models import Organization, OrganizationMember
from planbase.features.permissions.service import PermissionService
from planbase.features.users.models import User
from planbase.utils import get_logger


log = get_logger(__name__)


DEMO_ORGANIZATION = "PlanBase Demo"

DEMO_USERS = [
    # (appwrite id, email, name, role)
    ("demo-admin", "admin@planbase.local", "Demo Admin", "admin"),
    ("demo-member", "member@planbase.local", "Demo Member", "member"),
    ("demo-guest", "guest@planbase.local", "Demo Guest", "guest"),
]

GUEST_ROADMAP_VIEW = {
    "subviewsEnabled": {
        "roadmap.gantt": False,
        "roadmap.output": True,
        "roadmap.okr": False,
        "roadmap.tree": False,
    },
}

SYSTEM_TASK_PRIORITIES = [
    {"key": "low", "label": "Basse", "order": 10},
    {"key": "medium", "label": "Moyenne", "order": 20},
    {"key": "high", "label": "Haute", "order": 30},
    {"key": "urgent", "label": "Urgente", "order": 40},
]


async def seed_organization(db: AsyncSession) -> Organization:
    stmt = select(Organization).where(Organization.name == DEMO_ORGANIZATION)
    result = await db.execute(stmt)
    organization = result.scalars().first()
    if organization:
        log.debug(f"Organization '{DEMO_ORGANIZATION}' already exists, skipping")
        return organization

    organization = Organization(name=DEMO_ORGANIZATION, plan="demo")
    db.add(organization)
    await db.flush()
    log.info(f"Created organization: {DEMO_ORGANIZATION}")
    return organization


async def seed_members(db: AsyncSession, organization: Organization, permissions: PermissionService):
    """
    Create the demo users and their memberships with role default permissions.
    """
    for appwrite_id, email, name, role in DEMO_USERS:
        result = await db.execute(select(User).where(User.appwrite_id == appwrite_id))
        user = result.scalars().first()
        if user is None:
            user = User(appwrite_id=appwrite_id, email=email, name=name)
            db.add(user)
            await db.flush()
            log.info(f"Created user: {email}")

        result = await db.execute(
            select(OrganizationMember).where(
                OrganizationMember.organization_id == organization.id,
                OrganizationMember.user_id == user.id,
            )
        )
        if result.scalars().first():
            log.debug(f"Member '{email}' already exists, skipping")
            continue

        member = OrganizationMember(organization_id=organization.id, user_id=user.id, role=role)
        db.add(member)
        await db.flush()
        await permissions.initialize_default_permissions(db, member)
        user.current_organization_id = organization.id
        log.info(f"Added {email} as {role}")


async def main():
    """Main function to seed the demo organization."""
    log.info("Starting demo seeding...")

    log.info("Initializing database tables...")
    await init_db()

    permissions = PermissionService()
    config_service = ConfigService()

    async for db in get_db():
        organization = await seed_organization(db)
        await seed_members(db, organization, permissions)
        await permissions.update_role_view_template(
            db, organization.id, "guest", "roadmap", GUEST_ROADMAP_VIEW, apply_to_all=False
        )
        await config_service.update_setting(db, "task.priorities", SYSTEM_TASK_PRIORITIES, "system", None)
        await db.commit()
        log.info("Demo seeding completed successfully!")
        break  # Only use first session


if __name__ == "__main__":
    asyncio.run(main())
