"""
Permission matrix and Access Guard.

Pure functions over a MembershipAccess snapshot. This is the only place
where the admin short-circuit is implemented.

Defaults differ on purpose:
- permissions are fail-closed: a module or action missing from the matrix is denied
- subviews are fail-open: a module without view config, or a subview key
  missing from it, is visible; only an explicit False hides a subview
"""
import enum
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from planbase.features.permissions.constants import WRITE_ACTIONS, feature_flag_key
from planbase.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class ModuleViewConfig:
    """Effective view configuration of one module for one membership."""
    subviews_enabled: Optional[Mapping[str, bool]] = None
    layout: Optional[Mapping[str, Any]] = None

    @classmethod
    def from_json(cls, data: Optional[Mapping[str, Any]]) -> Optional["ModuleViewConfig"]:
        if data is None:
            return None
        subviews = data.get("subviewsEnabled", data.get("subviews_enabled"))
        return cls(subviews_enabled=subviews, layout=data.get("layout"))

    def to_json(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        if self.subviews_enabled is not None:
            result["subviewsEnabled"] = dict(self.subviews_enabled)
        if self.layout is not None:
            result["layout"] = dict(self.layout)
        return result


@dataclass(frozen=True)
class MembershipAccess:
    """
    Everything the guard needs about one membership, fetched once per request.

    ``permissions`` maps module -> action -> allowed. ``module_views`` holds
    the effective view config per module (member override, else the
    organization's role template); modules without config are absent.
    """
    member_id: str
    organization_id: str
    user_id: str
    role: str
    permissions: Mapping[str, Mapping[str, bool]] = field(default_factory=dict)
    module_views: Mapping[str, ModuleViewConfig] = field(default_factory=dict)

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class AccessLevel(str, enum.Enum):
    """Coarse summary of what a membership may do in a module."""
    NONE = "none"
    READ_ONLY = "read_only"
    WRITE = "write"
    FULL = "full"


class AccessOutcome(str, enum.Enum):
    ALLOWED = "allowed"
    LOADING = "loading"
    FEATURE_DISABLED = "feature_disabled"
    ACCESS_DENIED = "access_denied"
    SUBVIEW_UNAVAILABLE = "subview_unavailable"


@dataclass(frozen=True)
class AccessDecision:
    outcome: AccessOutcome
    module: str
    subview_key: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.outcome is AccessOutcome.ALLOWED

    @property
    def is_loading(self) -> bool:
        """Data not fetched yet: render nothing, neither content nor a denial."""
        return self.outcome is AccessOutcome.LOADING


def _name(value: Any) -> str:
    return value.value if isinstance(value, enum.Enum) else str(value)


def can(membership: Optional[MembershipAccess], module: Any, action: Any) -> bool:
    """
    Whether ``membership`` may perform ``action`` on ``module``.

    Admins always can. Otherwise the matrix decides and anything missing
    (membership not loaded, module absent, action absent) is False.
    """
    if membership is None:
        return False
    if membership.is_admin:
        return True
    module_perms = membership.permissions.get(_name(module))
    if not module_perms:
        return False
    return module_perms.get(_name(action)) is True


def is_read_only(membership: Optional[MembershipAccess], module: Any) -> bool:
    """
    True iff the membership is not admin, can read the module, and can
    neither create, update nor delete in it.

    A module with no permissions at all is not read-only; use
    ``access_level`` to tell "no access" apart.
    """
    if membership is None or membership.is_admin:
        return False
    if not can(membership, module, "read"):
        return False
    return not any(can(membership, module, action) for action in WRITE_ACTIONS)


def access_level(membership: Optional[MembershipAccess], module: Any) -> AccessLevel:
    if not can(membership, module, "read"):
        return AccessLevel.NONE
    writes = [can(membership, module, action) for action in WRITE_ACTIONS]
    if all(writes):
        return AccessLevel.FULL
    if any(writes):
        return AccessLevel.WRITE
    return AccessLevel.READ_ONLY


def is_subview_enabled(membership: Optional[MembershipAccess], module: Any, subview_key: str) -> bool:
    """
    Whether a named sub-section of ``module`` is visible.

    Admins see everything. Without view config for the module, or without
    an entry for the key, the subview is visible.
    """
    if membership is None:
        return False
    if membership.is_admin:
        return True
    view = membership.module_views.get(_name(module))
    if view is None or not view.subviews_enabled:
        return True
    return view.subviews_enabled.get(subview_key, True) is not False


def get_layout_config(membership: Optional[MembershipAccess], module: Any, key: str) -> Any:
    if membership is None:
        return None
    view = membership.module_views.get(_name(module))
    if view is None or not view.layout:
        return None
    return view.layout.get(key)


def is_feature_enabled(feature_flags: Mapping[str, Any], module: Any) -> bool:
    """Module feature flag; a flag missing from the config counts as enabled."""
    return bool(feature_flags.get(feature_flag_key(_name(module)), True))


def check_access(
    membership: Optional[MembershipAccess],
    module: Any,
    subview_key: Optional[str] = None,
    feature_flags: Optional[Mapping[str, Any]] = None,
) -> AccessDecision:
    """
    Single allow/deny decision for a guarded module view.

    Order: data loaded -> module feature flag (applies to admins too) ->
    read permission -> subview visibility. ``feature_flags`` accepts the
    effective configuration or a ``feature_flags.*`` map; None means the
    configuration has not been loaded yet.
    """
    module_name = _name(module)
    if membership is None or feature_flags is None:
        return AccessDecision(AccessOutcome.LOADING, module_name, subview_key)

    if not is_feature_enabled(feature_flags, module_name):
        outcome = AccessOutcome.FEATURE_DISABLED
    elif not can(membership, module_name, "read"):
        outcome = AccessOutcome.ACCESS_DENIED
    elif subview_key and not is_subview_enabled(membership, module_name, subview_key):
        outcome = AccessOutcome.SUBVIEW_UNAVAILABLE
    else:
        outcome = AccessOutcome.ALLOWED

    log.debug(
        "Access %s for member %s on %s%s",
        outcome.value, membership.member_id, module_name,
        f"/{subview_key}" if subview_key else ""
    )
    return AccessDecision(outcome, module_name, subview_key)
