"""Tests for the permission pack catalog and pure pack application."""

from __future__ import annotations

import pytest

from planbase.features.permissions.access import ModuleViewConfig
from planbase.features.permissions.constants import RBAC_ACTIONS, RBAC_MODULES, SUBVIEWS
from planbase.features.permissions.packs import (
    PERMISSION_PACKS,
    apply_pack_to_state,
    get_permission_pack,
    pack_matrix,
    pack_subviews,
)


class TestCatalog:
    """Tests for the pack catalog."""

    def test_pack_ids(self) -> None:
        assert [pack.id for pack in PERMISSION_PACKS] == ["admin", "member", "guest", "client_portal", "collaborator"]

    def test_unknown_pack(self) -> None:
        assert get_permission_pack("superuser") is None

    @pytest.mark.parametrize("pack", PERMISSION_PACKS, ids=lambda p: p.id)
    def test_entries_use_known_vocabulary(self, pack) -> None:
        for entry in pack.permissions:
            assert entry.module in RBAC_MODULES
            assert set(entry.actions) <= set(RBAC_ACTIONS)
        for module, keys in pack.default_subviews.items():
            assert set(keys) <= set(SUBVIEWS[module])

    def test_guest_matrix(self) -> None:
        matrix = pack_matrix(get_permission_pack("guest"))
        assert set(matrix) == {"projects", "roadmap", "tasks", "notes", "documents"}
        assert matrix["projects"] == {"read": True, "create": False, "update": False, "delete": False}

    def test_client_portal_subviews(self) -> None:
        subviews = pack_subviews(get_permission_pack("client_portal"))
        assert subviews["projects"]["projects.details"] is True
        assert subviews["projects"]["projects.list"] is False
        assert subviews["roadmap"] == {
            "roadmap.gantt": False,
            "roadmap.output": True,
            "roadmap.okr": False,
            "roadmap.tree": False,
        }
        # Covered but without listed subviews: everything visible.
        assert subviews["notes"] == {}


class TestApplyPackToState:
    """Tests for pure pack application."""

    def test_overwrites_covered_modules_only(self) -> None:
        permissions = {
            "crm": {"read": True, "create": True, "update": True, "delete": True},
            "projects": {"read": True, "create": True, "update": True, "delete": True},
        }
        new_permissions, _ = apply_pack_to_state(get_permission_pack("guest"), permissions, {})
        assert new_permissions["crm"] == permissions["crm"]
        assert new_permissions["projects"] == {"read": True, "create": False, "update": False, "delete": False}

    def test_does_not_mutate_inputs(self) -> None:
        permissions = {"projects": {"read": False}}
        views = {"projects": ModuleViewConfig(subviews_enabled={"projects.list": True})}
        apply_pack_to_state(get_permission_pack("guest"), permissions, views)
        assert permissions == {"projects": {"read": False}}
        assert views["projects"].subviews_enabled == {"projects.list": True}

    def test_layout_is_kept(self) -> None:
        views = {"roadmap": ModuleViewConfig(subviews_enabled={}, layout={"defaultZoom": "week"})}
        _, new_views = apply_pack_to_state(get_permission_pack("guest"), {}, views)
        assert new_views["roadmap"].layout == {"defaultZoom": "week"}
        assert new_views["roadmap"].subviews_enabled["roadmap.output"] is True

    def test_idempotent(self) -> None:
        pack = get_permission_pack("collaborator")
        once = apply_pack_to_state(pack, {}, {})
        twice = apply_pack_to_state(pack, *once)
        assert once == twice

    def test_later_pack_wins_on_shared_modules(self) -> None:
        admin = get_permission_pack("admin")
        guest = get_permission_pack("guest")
        state = apply_pack_to_state(admin, {}, {})
        permissions, views = apply_pack_to_state(guest, *state)

        assert permissions["projects"] == pack_matrix(guest)["projects"]
        assert views["projects"].subviews_enabled == pack_subviews(guest)["projects"]
        # crm and profitability are only in the admin pack.
        assert permissions["crm"] == pack_matrix(admin)["crm"]
        assert permissions["profitability"] == pack_matrix(admin)["profitability"]
