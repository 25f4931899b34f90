"""Tests for PermissionService against an in-memory database."""

from __future__ import annotations

import pytest
from sqlalchemy import select

from planbase.core.exceptions import NotFoundError
from planbase.features.permissions.access import can, is_subview_enabled
from planbase.features.permissions.constants import default_matrix_for_role
from planbase.features.permissions.models import ModulePermission, ModuleView
from planbase.features.permissions.packs import get_permission_pack, pack_matrix, pack_subviews


class TestMatrix:
    """Tests for matrix reads and role defaults."""

    @pytest.mark.asyncio
    async def test_seeded_defaults(self, db, org, permission_service) -> None:
        member = org["member"]
        matrix = await permission_service.get_matrix(db, member.organization_id, member.id)
        assert matrix == default_matrix_for_role("member")

    @pytest.mark.asyncio
    async def test_matrix_is_cached_and_invalidated(self, db, org, permission_service) -> None:
        member = org["guest"]
        await permission_service.get_matrix(db, member.organization_id, member.id)
        assert f"{member.organization_id}:{member.id}" in permission_service.cache

        await permission_service.bulk_update_permissions(db, member, [("crm", "create", True)])
        matrix = await permission_service.get_matrix(db, member.organization_id, member.id)
        assert matrix["crm"]["create"] is True

    @pytest.mark.asyncio
    async def test_returned_matrix_is_a_copy(self, db, org, permission_service) -> None:
        member = org["guest"]
        matrix = await permission_service.get_matrix(db, member.organization_id, member.id)
        matrix["profitability"]["read"] = True
        again = await permission_service.get_matrix(db, member.organization_id, member.id)
        assert again["profitability"]["read"] is False

    @pytest.mark.asyncio
    async def test_bulk_update_bumps_versions(self, db, org, permission_service) -> None:
        member = org["member"]
        await permission_service.bulk_update_permissions(
            db, member, [("profitability", "update", True), ("tasks", "read", True)]
        )
        result = await db.execute(
            select(ModulePermission).where(
                ModulePermission.member_id == member.id, ModulePermission.module.in_(["profitability", "tasks"])
            )
        )
        versions = {(row.module, row.action): row.version for row in result.scalars().all()}
        assert versions[("profitability", "update")] == 2
        # Unchanged cell keeps its version.
        assert versions[("tasks", "read")] == 1

    @pytest.mark.asyncio
    async def test_role_change_resets_permissions(self, db, org, permission_service) -> None:
        member = org["guest"]
        await permission_service.bulk_update_permissions(db, member, [("profitability", "read", True)])
        await permission_service.update_member_role(db, member, "member")
        matrix = await permission_service.get_matrix(db, member.organization_id, member.id)
        assert member.role == "member"
        assert matrix == default_matrix_for_role("member")


class TestModuleViews:
    """Tests for member views and role templates."""

    @pytest.mark.asyncio
    async def test_role_template_applies_without_member_view(self, db, org, permission_service) -> None:
        organization = org["organization"]
        await permission_service.update_role_view_template(
            db, organization.id, "guest", "roadmap", {"subviewsEnabled": {"roadmap.gantt": False}}
        )
        guest = await permission_service.load_membership_access(db, org["guest"])
        member = await permission_service.load_membership_access(db, org["member"])
        assert is_subview_enabled(guest, "roadmap", "roadmap.gantt") is False
        assert is_subview_enabled(member, "roadmap", "roadmap.gantt") is True

    @pytest.mark.asyncio
    async def test_member_view_overrides_template(self, db, org, permission_service) -> None:
        organization = org["organization"]
        await permission_service.update_role_view_template(
            db, organization.id, "guest", "roadmap", {"subviewsEnabled": {"roadmap.gantt": False}}
        )
        await permission_service.set_module_view(
            db, org["guest"], "roadmap", subviews_enabled={"roadmap.gantt": True}, layout={"zoom": "week"}
        )
        access = await permission_service.load_membership_access(db, org["guest"])
        assert is_subview_enabled(access, "roadmap", "roadmap.gantt") is True
        assert access.module_views["roadmap"].layout == {"zoom": "week"}

    @pytest.mark.asyncio
    async def test_apply_to_all_writes_member_views(self, db, org, permission_service) -> None:
        organization = org["organization"]
        await permission_service.update_role_view_template(
            db, organization.id, "member", "crm", {"subviewsEnabled": {"crm.kpis": False}}, apply_to_all=True
        )
        view = await permission_service.get_module_view(db, org["member"].id, "crm")
        assert view is not None
        assert view.subviews_enabled == {"crm.kpis": False}
        assert await permission_service.get_module_view(db, org["guest"].id, "crm") is None

    @pytest.mark.asyncio
    async def test_template_upsert(self, db, org, permission_service) -> None:
        organization = org["organization"]
        first = await permission_service.update_role_view_template(db, organization.id, "guest", "crm", {"layout": {"a": 1}})
        second = await permission_service.update_role_view_template(db, organization.id, "guest", "crm", {"layout": {"a": 2}})
        assert first.id == second.id
        assert second.config == {"layout": {"a": 2}}


class TestApplyPack:
    """Tests for applying packs to stored memberships."""

    @pytest.mark.asyncio
    async def test_apply_pack_replaces_covered_modules(self, db, org, permission_service) -> None:
        member = org["member"]
        pack = get_permission_pack("client_portal")
        matrix = await permission_service.apply_pack(db, member.organization_id, "client_portal", member.id)

        for module, actions in pack_matrix(pack).items():
            assert matrix[module] == actions
        # crm is not in the pack: member defaults remain.
        assert matrix["crm"] == default_matrix_for_role("member")["crm"]

        view = await permission_service.get_module_view(db, member.id, "projects")
        assert view.subviews_enabled == pack_subviews(pack)["projects"]

    @pytest.mark.asyncio
    async def test_apply_pack_keeps_layout(self, db, org, permission_service) -> None:
        member = org["member"]
        await permission_service.set_module_view(db, member, "roadmap", layout={"zoom": "month"})
        await permission_service.apply_pack(db, member.organization_id, "guest", member.id)
        access = await permission_service.load_membership_access(db, member)
        assert access.module_views["roadmap"].layout == {"zoom": "month"}
        assert is_subview_enabled(access, "roadmap", "roadmap.gantt") is False
        assert is_subview_enabled(access, "roadmap", "roadmap.output") is True

    @pytest.mark.asyncio
    async def test_apply_pack_is_idempotent(self, db, org, permission_service) -> None:
        member = org["guest"]
        first = await permission_service.apply_pack(db, member.organization_id, "collaborator", member.id)
        views_first = {m: v.subviews_enabled for m, v in (await permission_service.get_member_views(db, member.id)).items()}
        second = await permission_service.apply_pack(db, member.organization_id, "collaborator", member.id)
        views_second = {m: v.subviews_enabled for m, v in (await permission_service.get_member_views(db, member.id)).items()}
        assert first == second
        assert views_first == views_second

    @pytest.mark.asyncio
    async def test_later_pack_wins(self, db, org, permission_service) -> None:
        member = org["member"]
        await permission_service.apply_pack(db, member.organization_id, "admin", member.id)
        matrix = await permission_service.apply_pack(db, member.organization_id, "guest", member.id)
        assert matrix["projects"] == pack_matrix(get_permission_pack("guest"))["projects"]
        assert matrix["profitability"] == pack_matrix(get_permission_pack("admin"))["profitability"]

        access = await permission_service.load_membership_access(db, member)
        assert can(access, "profitability", "delete") is True
        assert can(access, "projects", "update") is False

    @pytest.mark.asyncio
    async def test_unknown_pack_writes_nothing(self, db, org, permission_service) -> None:
        member = org["member"]
        before = await permission_service.get_matrix(db, member.organization_id, member.id)
        with pytest.raises(NotFoundError):
            await permission_service.apply_pack(db, member.organization_id, "superuser", member.id)
        assert await permission_service.get_matrix(db, member.organization_id, member.id) == before

    @pytest.mark.asyncio
    async def test_unknown_member(self, db, org, permission_service) -> None:
        with pytest.raises(NotFoundError):
            await permission_service.apply_pack(db, org["organization"].id, "guest", "01HNOTAMEMBER0000000000000")

    @pytest.mark.asyncio
    async def test_member_of_other_organization(self, db, org, permission_service) -> None:
        with pytest.raises(NotFoundError):
            await permission_service.apply_pack(db, "other-org", "guest", org["member"].id)

    @pytest.mark.asyncio
    async def test_apply_pack_creates_view_rows(self, db, org, permission_service) -> None:
        member = org["admin"]
        await permission_service.apply_pack(db, member.organization_id, "guest", member.id)
        result = await db.execute(select(ModuleView.module).where(ModuleView.member_id == member.id))
        assert set(result.scalars().all()) == set(get_permission_pack("guest").modules)


class TestRollback:
    """Tests for the matrix cache around transactions that do not commit."""

    @pytest.mark.asyncio
    async def test_rolled_back_pack_is_not_served_from_cache(self, db, org, permission_service) -> None:
        member = org["member"]
        organization_id, member_id = member.organization_id, member.id

        matrix = await permission_service.apply_pack(db, organization_id, "guest", member_id)
        assert matrix["tasks"]["delete"] is False
        assert f"{organization_id}:{member_id}" not in permission_service.cache

        await db.rollback()
        matrix = await permission_service.get_matrix(db, organization_id, member_id)
        assert matrix == default_matrix_for_role("member")

    @pytest.mark.asyncio
    async def test_rolled_back_cell_update_is_not_cached(self, db, org, permission_service) -> None:
        member = org["guest"]
        organization_id, member_id = member.organization_id, member.id

        matrix = await permission_service.bulk_update_permissions(db, member, [("profitability", "read", True)])
        assert matrix["profitability"]["read"] is True
        await permission_service.get_matrix(db, organization_id, member_id)
        assert f"{organization_id}:{member_id}" not in permission_service.cache

        await db.rollback()
        matrix = await permission_service.get_matrix(db, organization_id, member_id)
        assert matrix["profitability"]["read"] is False

    @pytest.mark.asyncio
    async def test_commit_drops_entries_cached_meanwhile(self, db, org, permission_service) -> None:
        member = org["guest"]
        key = f"{member.organization_id}:{member.id}"

        await permission_service.bulk_update_permissions(db, member, [("crm", "update", True)])
        permission_service.cache.set(key, default_matrix_for_role("guest"))
        await db.commit()
        assert key not in permission_service.cache
        matrix = await permission_service.get_matrix(db, member.organization_id, member.id)
        assert matrix["crm"]["update"] is True
