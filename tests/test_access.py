"""Tests for the permission matrix and access guard."""

from __future__ import annotations

import pytest

from planbase.features.permissions.access import (
    AccessLevel,
    AccessOutcome,
    MembershipAccess,
    ModuleViewConfig,
    access_level,
    can,
    check_access,
    get_layout_config,
    is_read_only,
    is_subview_enabled,
)
from planbase.features.permissions.constants import RBAC_ACTIONS, RBAC_MODULES, RbacModule, default_matrix_for_role


ALL_ON = {"feature_flags.crm_module": True}


def membership(role="member", permissions=None, module_views=None) -> MembershipAccess:
    return MembershipAccess(
        member_id="m1",
        organization_id="o1",
        user_id="u1",
        role=role,
        permissions=permissions or {},
        module_views=module_views or {},
    )


class TestCan:
    """Tests for can()."""

    def test_admin_can_everything(self) -> None:
        admin = membership(role="admin")
        for module in RBAC_MODULES:
            for action in RBAC_ACTIONS:
                assert can(admin, module, action) is True

    def test_missing_module_is_denied(self) -> None:
        assert can(membership(permissions={"crm": {"read": True}}), "projects", "read") is False

    def test_missing_action_is_denied(self) -> None:
        assert can(membership(permissions={"crm": {"read": True}}), "crm", "delete") is False

    def test_explicit_values(self) -> None:
        m = membership(permissions={"crm": {"read": True, "update": False}})
        assert can(m, "crm", "read") is True
        assert can(m, "crm", "update") is False

    def test_not_loaded_is_denied(self) -> None:
        assert can(None, "crm", "read") is False

    def test_accepts_enum_members(self) -> None:
        m = membership(permissions={"crm": {"read": True}})
        assert can(m, RbacModule.CRM, "read") is True

    def test_unknown_strings_are_denied(self) -> None:
        m = membership(permissions=default_matrix_for_role("member"))
        assert can(m, "payroll", "read") is False
        assert can(m, "crm", "approve") is False


class TestReadOnly:
    """Tests for is_read_only() and access_level()."""

    def test_read_without_writes_is_read_only(self) -> None:
        m = membership(permissions={"projects": {"read": True, "create": False, "update": False, "delete": False}})
        assert is_read_only(m, "projects") is True
        assert access_level(m, "projects") is AccessLevel.READ_ONLY

    def test_any_write_is_not_read_only(self) -> None:
        m = membership(permissions={"projects": {"read": True, "update": True}})
        assert is_read_only(m, "projects") is False
        assert access_level(m, "projects") is AccessLevel.WRITE

    def test_admin_is_never_read_only(self) -> None:
        admin = membership(role="admin")
        assert is_read_only(admin, "profitability") is False
        assert access_level(admin, "profitability") is AccessLevel.FULL

    def test_no_permissions_is_not_read_only_but_no_access(self) -> None:
        m = membership(permissions={"profitability": {"read": False}})
        assert is_read_only(m, "profitability") is False
        assert access_level(m, "profitability") is AccessLevel.NONE

    def test_not_loaded(self) -> None:
        assert is_read_only(None, "crm") is False
        assert access_level(None, "crm") is AccessLevel.NONE


class TestSubviews:
    """Tests for is_subview_enabled() and layout lookup."""

    def test_no_view_config_is_visible(self) -> None:
        assert is_subview_enabled(membership(), "crm", "crm.kpis") is True

    def test_absent_key_is_visible(self) -> None:
        m = membership(module_views={"crm": ModuleViewConfig(subviews_enabled={"crm.clients": False})})
        assert is_subview_enabled(m, "crm", "crm.kpis") is True

    def test_explicit_false_hides(self) -> None:
        m = membership(module_views={"crm": ModuleViewConfig(subviews_enabled={"crm.kpis": False})})
        assert is_subview_enabled(m, "crm", "crm.kpis") is False

    def test_admin_sees_hidden_subviews(self) -> None:
        m = membership(role="admin", module_views={"crm": ModuleViewConfig(subviews_enabled={"crm.kpis": False})})
        assert is_subview_enabled(m, "crm", "crm.kpis") is True

    def test_not_loaded_is_hidden(self) -> None:
        assert is_subview_enabled(None, "crm", "crm.kpis") is False

    def test_layout_config(self) -> None:
        m = membership(module_views={"roadmap": ModuleViewConfig(layout={"defaultZoom": "month"})})
        assert get_layout_config(m, "roadmap", "defaultZoom") == "month"
        assert get_layout_config(m, "roadmap", "missing") is None
        assert get_layout_config(m, "crm", "defaultZoom") is None

    def test_view_config_from_json_accepts_both_spellings(self) -> None:
        camel = ModuleViewConfig.from_json({"subviewsEnabled": {"a": True}})
        snake = ModuleViewConfig.from_json({"subviews_enabled": {"a": True}})
        assert camel == snake
        assert ModuleViewConfig.from_json(None) is None
        assert camel.to_json() == {"subviewsEnabled": {"a": True}}


class TestCheckAccess:
    """Tests for the guard decision order."""

    def test_loading_when_membership_missing(self) -> None:
        decision = check_access(None, "crm", feature_flags=ALL_ON)
        assert decision.outcome is AccessOutcome.LOADING
        assert decision.is_loading
        assert not decision.allowed

    def test_loading_when_flags_missing(self) -> None:
        decision = check_access(membership(role="admin"), "crm")
        assert decision.outcome is AccessOutcome.LOADING

    def test_feature_flag_off_denies_admin(self) -> None:
        decision = check_access(membership(role="admin"), "crm", feature_flags={"feature_flags.crm_module": False})
        assert decision.outcome is AccessOutcome.FEATURE_DISABLED

    def test_missing_flag_counts_as_enabled(self) -> None:
        decision = check_access(membership(role="admin"), "notes", feature_flags={})
        assert decision.allowed

    def test_no_read_is_access_denied(self) -> None:
        decision = check_access(membership(permissions={"crm": {"read": False}}), "crm", feature_flags=ALL_ON)
        assert decision.outcome is AccessOutcome.ACCESS_DENIED

    def test_hidden_subview(self) -> None:
        m = membership(
            permissions={"crm": {"read": True}},
            module_views={"crm": ModuleViewConfig(subviews_enabled={"crm.kpis": False})},
        )
        decision = check_access(m, "crm", "crm.kpis", feature_flags=ALL_ON)
        assert decision.outcome is AccessOutcome.SUBVIEW_UNAVAILABLE
        assert check_access(m, "crm", "crm.clients", feature_flags=ALL_ON).allowed

    def test_read_denied_wins_over_subview(self) -> None:
        m = membership(module_views={"crm": ModuleViewConfig(subviews_enabled={"crm.kpis": False})})
        decision = check_access(m, "crm", "crm.kpis", feature_flags=ALL_ON)
        assert decision.outcome is AccessOutcome.ACCESS_DENIED

    @pytest.mark.parametrize("role", ["member", "guest"])
    def test_role_defaults_can_read_projects(self, role: str) -> None:
        m = membership(role=role, permissions=default_matrix_for_role(role))
        assert check_access(m, "projects", feature_flags={}).allowed

    def test_guest_defaults_cannot_open_profitability(self) -> None:
        m = membership(role="guest", permissions=default_matrix_for_role("guest"))
        decision = check_access(m, "profitability", feature_flags={})
        assert decision.outcome is AccessOutcome.ACCESS_DENIED


class TestMemberScenario:
    """Read-only CRM member with no other modules."""

    def test_scenario(self) -> None:
        m = membership(permissions={"crm": {"read": True, "create": False, "update": False, "delete": False}})
        assert can(m, "crm", "read") is True
        assert can(m, "crm", "create") is False
        assert is_read_only(m, "crm") is True
        assert can(m, "projects", "read") is False
