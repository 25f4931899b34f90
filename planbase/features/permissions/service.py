"""
Permission service: reads and writes member permission matrices and module
views, and applies permission packs.

Writes only flush; the request's session commits once at the end, so a
multi-row change such as a pack application is never half-applied.
"""
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from planbase.core.cache import TTLCache
from planbase.core.database.engine import has_uncommitted_writes, on_commit
from planbase.core.exceptions import NotFoundError
from planbase.features.organizations.models import OrganizationMember
from planbase.features.permissions.access import MembershipAccess, ModuleViewConfig
from planbase.features.permissions.constants import RBAC_ACTIONS, RBAC_MODULES, default_matrix_for_role
from planbase.features.permissions.models import ModulePermission, ModuleView, RoleViewTemplate
from planbase.features.permissions.packs import apply_pack_to_state, get_permission_pack
from planbase.utils import get_logger


log = get_logger(__name__)

Matrix = Dict[str, Dict[str, bool]]


def _empty_matrix() -> Matrix:
    return {module: {action: False for action in RBAC_ACTIONS} for module in RBAC_MODULES}


def _copy_matrix(matrix: Mapping[str, Mapping[str, bool]]) -> Matrix:
    return {module: dict(actions) for module, actions in matrix.items()}


class PermissionService:
    """
    Permission matrices keyed by membership, cached per ``organization:member``.

    Every write that affects a member drops that member's cache entry, and
    drops it again once the transaction commits. While a session holds
    uncommitted writes its reads bypass the cache, so a rolled back write
    never reaches it.
    """

    def __init__(self, cache: Optional[TTLCache[Matrix]] = None):
        self.cache: TTLCache[Matrix] = cache if cache is not None else TTLCache(ttl=300)

    @staticmethod
    def _cache_key(organization_id: str, member_id: str) -> str:
        return f"{organization_id}:{member_id}"

    def clear_member_cache(self, organization_id: str, member_id: str) -> None:
        self.cache.delete(self._cache_key(organization_id, member_id))

    def _invalidate_member(self, db: AsyncSession, organization_id: str, member_id: str) -> None:
        self.clear_member_cache(organization_id, member_id)
        on_commit(db, lambda: self.clear_member_cache(organization_id, member_id))

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    async def get_member(self, db: AsyncSession, organization_id: str, member_id: str) -> OrganizationMember:
        """
        Member of ``organization_id`` by id.

        Raises:
            NotFoundError: if no such member exists in the organization
        """
        result = await db.execute(
            select(OrganizationMember).where(
                OrganizationMember.id == member_id,
                OrganizationMember.organization_id == organization_id,
            )
        )
        member = result.scalar_one_or_none()
        if member is None:
            raise NotFoundError("Member", member_id)
        return member

    async def list_members(self, db: AsyncSession, organization_id: str) -> List[OrganizationMember]:
        result = await db.execute(
            select(OrganizationMember)
            .where(OrganizationMember.organization_id == organization_id)
            .order_by(OrganizationMember.created_at)
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _permission_rows(self, db: AsyncSession, member_id: str) -> Dict[Tuple[str, str], ModulePermission]:
        result = await db.execute(select(ModulePermission).where(ModulePermission.member_id == member_id))
        return {(row.module, row.action): row for row in result.scalars().all()}

    async def get_matrix(self, db: AsyncSession, organization_id: str, member_id: str) -> Matrix:
        """
        Full module -> action -> allowed matrix of a member.

        Every module and action is present; cells without a row are False.
        """
        key = self._cache_key(organization_id, member_id)
        use_cache = not has_uncommitted_writes(db)
        cached = self.cache.get(key) if use_cache else None
        if cached is not None:
            return _copy_matrix(cached)

        matrix = _empty_matrix()
        for (module, action), row in (await self._permission_rows(db, member_id)).items():
            matrix.setdefault(module, {})[action] = bool(row.allowed)

        if use_cache:
            self.cache.set(key, matrix)
        return _copy_matrix(matrix)

    async def get_member_views(self, db: AsyncSession, member_id: str) -> Dict[str, ModuleView]:
        """The member's own module view rows, by module."""
        result = await db.execute(select(ModuleView).where(ModuleView.member_id == member_id))
        return {row.module: row for row in result.scalars().all()}

    async def get_module_view(self, db: AsyncSession, member_id: str, module: str) -> Optional[ModuleView]:
        result = await db.execute(
            select(ModuleView).where(ModuleView.member_id == member_id, ModuleView.module == module)
        )
        return result.scalar_one_or_none()

    async def get_role_view_template(
        self,
        db: AsyncSession,
        organization_id: str,
        role: str,
        module: str
    ) -> Optional[RoleViewTemplate]:
        result = await db.execute(
            select(RoleViewTemplate).where(
                RoleViewTemplate.organization_id == organization_id,
                RoleViewTemplate.role == role,
                RoleViewTemplate.module == module,
            )
        )
        return result.scalar_one_or_none()

    async def get_effective_module_views(
        self,
        db: AsyncSession,
        member: OrganizationMember
    ) -> Dict[str, ModuleViewConfig]:
        """
        View config per module: the member's own view, else the organization's
        template for the member's role. Modules with neither are absent.
        """
        result = await db.execute(
            select(RoleViewTemplate).where(
                RoleViewTemplate.organization_id == member.organization_id,
                RoleViewTemplate.role == member.role,
            )
        )
        views: Dict[str, ModuleViewConfig] = {}
        for template in result.scalars().all():
            views[template.module] = ModuleViewConfig.from_json(template.config or {})

        for module, row in (await self.get_member_views(db, member.id)).items():
            views[module] = ModuleViewConfig(subviews_enabled=row.subviews_enabled, layout=row.layout)
        return views

    async def load_membership_access(self, db: AsyncSession, member: OrganizationMember) -> MembershipAccess:
        """Snapshot used by the access guard for one request."""
        return MembershipAccess(
            member_id=member.id,
            organization_id=member.organization_id,
            user_id=member.user_id,
            role=member.role,
            permissions=await self.get_matrix(db, member.organization_id, member.id),
            module_views=await self.get_effective_module_views(db, member),
        )

    # ------------------------------------------------------------------
    # Permission writes
    # ------------------------------------------------------------------

    async def _write_cells(
        self,
        db: AsyncSession,
        member: OrganizationMember,
        cells: Iterable[Tuple[str, str, bool]]
    ) -> int:
        """Upsert (module, action, allowed) cells; returns how many rows changed."""
        rows = await self._permission_rows(db, member.id)
        changed = 0
        for module, action, allowed in cells:
            row = rows.get((module, action))
            if row is None:
                row = ModulePermission(
                    organization_id=member.organization_id,
                    member_id=member.id,
                    module=module,
                    action=action,
                    allowed=allowed,
                    version=1,
                )
                db.add(row)
                rows[(module, action)] = row
                changed += 1
            elif row.allowed != allowed:
                row.allowed = allowed
                row.version = row.version + 1
                changed += 1

        await db.flush()
        self._invalidate_member(db, member.organization_id, member.id)
        return changed

    async def _write_matrix(self, db: AsyncSession, member: OrganizationMember, matrix: Mapping[str, Mapping[str, bool]]) -> int:
        cells = [
            (module, action, bool(allowed))
            for module, actions in matrix.items()
            for action, allowed in actions.items()
        ]
        return await self._write_cells(db, member, cells)

    async def initialize_default_permissions(self, db: AsyncSession, member: OrganizationMember) -> Matrix:
        """Seed a new membership with its role's default permissions."""
        matrix = default_matrix_for_role(member.role)
        await self._write_matrix(db, member, matrix)
        log.info("Seeded %s default permissions for member %s", member.role, member.id)
        return matrix

    async def reset_permissions_to_role_defaults(self, db: AsyncSession, member: OrganizationMember) -> Matrix:
        matrix = default_matrix_for_role(member.role)
        changed = await self._write_matrix(db, member, matrix)
        log.info("Reset member %s to %s defaults (%d cells changed)", member.id, member.role, changed)
        return matrix

    async def update_member_role(self, db: AsyncSession, member: OrganizationMember, role: str) -> OrganizationMember:
        """Change a member's role and reset their permissions to the new role's defaults."""
        previous = member.role
        member.role = role
        await db.flush()
        await self.reset_permissions_to_role_defaults(db, member)
        log.info("Member %s role changed %s -> %s", member.id, previous, role)
        return member

    async def bulk_update_permissions(
        self,
        db: AsyncSession,
        member: OrganizationMember,
        updates: Iterable[Tuple[str, str, bool]]
    ) -> Matrix:
        """Set individual (module, action) cells; returns the resulting matrix."""
        changed = await self._write_cells(db, member, updates)
        log.info("Updated %d permission cells for member %s", changed, member.id)
        return await self.get_matrix(db, member.organization_id, member.id)

    # ------------------------------------------------------------------
    # View writes
    # ------------------------------------------------------------------

    async def set_module_view(
        self,
        db: AsyncSession,
        member: OrganizationMember,
        module: str,
        subviews_enabled: Optional[Mapping[str, bool]] = None,
        layout: Optional[Mapping[str, Any]] = None
    ) -> ModuleView:
        """Per-member view override for one module. Fields left as None are kept."""
        view = await self.get_module_view(db, member.id, module)
        if view is None:
            view = ModuleView(
                organization_id=member.organization_id,
                member_id=member.id,
                module=module,
                subviews_enabled=dict(subviews_enabled) if subviews_enabled is not None else None,
                layout=dict(layout) if layout is not None else None,
            )
            db.add(view)
        else:
            if subviews_enabled is not None:
                view.subviews_enabled = dict(subviews_enabled)
            if layout is not None:
                view.layout = dict(layout)

        await db.flush()
        await db.refresh(view)
        log.info("Module view %s set for member %s", module, member.id)
        return view

    async def update_role_view_template(
        self,
        db: AsyncSession,
        organization_id: str,
        role: str,
        module: str,
        config: Mapping[str, Any],
        apply_to_all: bool = False
    ) -> RoleViewTemplate:
        """
        Upsert the organization's view template for ``role`` on ``module``.

        With ``apply_to_all`` the config is also written as the own view of
        every member currently holding ``role``.
        """
        template = await self.get_role_view_template(db, organization_id, role, module)
        if template is None:
            template = RoleViewTemplate(
                organization_id=organization_id, role=role, module=module, config=dict(config)
            )
            db.add(template)
        else:
            template.config = dict(config)
        await db.flush()
        await db.refresh(template)

        if apply_to_all:
            view_config = ModuleViewConfig.from_json(config)
            members = [m for m in await self.list_members(db, organization_id) if m.role == role]
            for member in members:
                await self.set_module_view(
                    db, member, module,
                    subviews_enabled=view_config.subviews_enabled,
                    layout=view_config.layout,
                )
            log.info("Role view %s/%s applied to %d members", role, module, len(members))

        return template

    # ------------------------------------------------------------------
    # Packs
    # ------------------------------------------------------------------

    async def apply_pack(self, db: AsyncSession, organization_id: str, pack_id: str, member_id: str) -> Matrix:
        """
        Apply a permission pack to a member and return the new full matrix.

        Covered modules get exactly the pack's actions and subviews (layouts
        are kept); other modules are untouched.

        Raises:
            NotFoundError: unknown pack or member, before anything is written
        """
        pack = get_permission_pack(pack_id)
        if pack is None:
            raise NotFoundError("Permission pack", pack_id)
        member = await self.get_member(db, organization_id, member_id)

        own_views = await self.get_member_views(db, member.id)
        current_views = {
            module: ModuleViewConfig(subviews_enabled=row.subviews_enabled, layout=row.layout)
            for module, row in own_views.items()
        }
        current_matrix = await self.get_matrix(db, organization_id, member.id)
        new_matrix, new_views = apply_pack_to_state(pack, current_matrix, current_views)

        covered = pack.modules
        await self._write_matrix(db, member, {module: new_matrix[module] for module in covered})
        for module in covered:
            view = new_views[module]
            row = own_views.get(module)
            if row is None:
                db.add(ModuleView(
                    organization_id=organization_id,
                    member_id=member.id,
                    module=module,
                    subviews_enabled=dict(view.subviews_enabled or {}),
                    layout=None,
                ))
            else:
                row.subviews_enabled = dict(view.subviews_enabled or {})
        await db.flush()

        self._invalidate_member(db, organization_id, member.id)
        log.info("Applied pack %s (v%d) to member %s: %s", pack.id, pack.version, member.id, ", ".join(covered))
        return await self.get_matrix(db, organization_id, member.id)
