"""
Permission Packs: named bundles of module permissions and default subviews.

The catalog is read-only and compiled in. Applying a pack replaces, for
each module it covers, the member's permissions and subview visibility;
modules the pack does not mention are left as they are.
"""
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Tuple

from planbase.features.permissions.access import ModuleViewConfig
from planbase.features.permissions.constants import RBAC_ACTIONS, SUBVIEWS


@dataclass(frozen=True)
class PermissionPackEntry:
    module: str
    actions: Tuple[str, ...]
    subviews: Tuple[str, ...] = ()


@dataclass(frozen=True)
class PermissionPack:
    id: str
    name: str
    name_en: str
    description: str
    description_en: str
    icon: str
    permissions: Tuple[PermissionPackEntry, ...]
    default_subviews: Mapping[str, Tuple[str, ...]] = field(default_factory=dict)
    version: int = 1

    @property
    def modules(self) -> Tuple[str, ...]:
        """Modules whose state the pack replaces, in catalog order."""
        covered = [entry.module for entry in self.permissions]
        covered += [module for module in self.default_subviews if module not in covered]
        return tuple(covered)


_CRUD = ("read", "create", "update", "delete")
_RCU = ("read", "create", "update")


PERMISSION_PACKS: Tuple[PermissionPack, ...] = (
    PermissionPack(
        id="admin",
        name="Administrateur",
        name_en="Administrator",
        description="Accès complet à tous les modules avec droits de gestion",
        description_en="Full access to all modules with management rights",
        icon="shield",
        permissions=(
            PermissionPackEntry("crm", _CRUD),
            PermissionPackEntry("projects", _CRUD),
            PermissionPackEntry("product", _CRUD),
            PermissionPackEntry("roadmap", _CRUD),
            PermissionPackEntry("tasks", _CRUD),
            PermissionPackEntry("notes", _CRUD),
            PermissionPackEntry("documents", _CRUD),
            PermissionPackEntry("profitability", _CRUD),
        ),
        default_subviews={
            "crm": ("crm.clients", "crm.opportunities", "crm.kpis"),
            "product": ("product.backlog", "product.epics", "product.stats", "product.retrospective", "product.recipe"),
            "profitability": (
                "profitability.overview",
                "profitability.byProject",
                "profitability.simulations",
                "profitability.resources",
            ),
            "documents": ("documents.list", "documents.upload", "documents.integrations"),
            "roadmap": ("roadmap.gantt", "roadmap.output", "roadmap.okr", "roadmap.tree"),
            "projects": ("projects.list", "projects.details", "projects.scope", "projects.billing"),
        },
    ),
    PermissionPack(
        id="member",
        name="Membre standard",
        name_en="Standard Member",
        description="Accès complet en lecture/écriture sur les modules opérationnels",
        description_en="Full read/write access on operational modules",
        icon="user",
        permissions=(
            PermissionPackEntry("crm", _RCU),
            PermissionPackEntry("projects", _RCU),
            PermissionPackEntry("product", _RCU),
            PermissionPackEntry("roadmap", _RCU),
            PermissionPackEntry("tasks", _CRUD),
            PermissionPackEntry("notes", _CRUD),
            PermissionPackEntry("documents", _RCU),
            PermissionPackEntry("profitability", ("read",)),
        ),
        default_subviews={
            "crm": ("crm.clients", "crm.opportunities", "crm.kpis"),
            "product": ("product.backlog", "product.epics", "product.stats", "product.retrospective", "product.recipe"),
            "profitability": ("profitability.overview", "profitability.byProject"),
            "documents": ("documents.list", "documents.upload"),
            "roadmap": ("roadmap.gantt", "roadmap.output", "roadmap.okr", "roadmap.tree"),
            "projects": ("projects.list", "projects.details", "projects.scope"),
        },
    ),
    PermissionPack(
        id="guest",
        name="Invité (lecture seule)",
        name_en="Guest (Read-only)",
        description="Accès en lecture seule aux modules de base",
        description_en="Read-only access to basic modules",
        icon="eye",
        permissions=(
            PermissionPackEntry("projects", ("read",)),
            PermissionPackEntry("roadmap", ("read",)),
            PermissionPackEntry("tasks", ("read",)),
            PermissionPackEntry("notes", ("read",)),
            PermissionPackEntry("documents", ("read",)),
        ),
        default_subviews={
            "projects": ("projects.list", "projects.details"),
            "roadmap": ("roadmap.output",),
            "documents": ("documents.list",),
        },
    ),
    PermissionPack(
        id="client_portal",
        name="Portail Client",
        name_en="Client Portal",
        description="Accès client restreint aux projets autorisés uniquement",
        description_en="Restricted client access to authorized projects only",
        icon="building",
        permissions=(
            PermissionPackEntry("projects", ("read",)),
            PermissionPackEntry("roadmap", ("read",), subviews=("roadmap.output",)),
            PermissionPackEntry("documents", ("read",)),
            PermissionPackEntry("notes", ("read",)),
        ),
        default_subviews={
            "projects": ("projects.details",),
            "roadmap": ("roadmap.output",),
            "documents": ("documents.list",),
        },
    ),
    PermissionPack(
        id="collaborator",
        name="Collaborateur projet",
        name_en="Project Collaborator",
        description="Accès lecture/écriture sur Projets, Tâches et Notes (sans rentabilité)",
        description_en="Read/write access on Projects, Tasks and Notes (no profitability)",
        icon="users",
        permissions=(
            PermissionPackEntry("projects", ("read", "update")),
            PermissionPackEntry("product", _RCU),
            PermissionPackEntry("roadmap", ("read",)),
            PermissionPackEntry("tasks", _CRUD),
            PermissionPackEntry("notes", _CRUD),
            PermissionPackEntry("documents", _RCU),
        ),
        default_subviews={
            "product": ("product.backlog", "product.epics", "product.stats"),
            "roadmap": ("roadmap.gantt", "roadmap.output"),
            "documents": ("documents.list", "documents.upload"),
            "projects": ("projects.list", "projects.details", "projects.scope"),
        },
    ),
)

_PACKS_BY_ID: Dict[str, PermissionPack] = {pack.id: pack for pack in PERMISSION_PACKS}


def get_permission_pack(pack_id: str) -> Optional[PermissionPack]:
    return _PACKS_BY_ID.get(pack_id)


def pack_matrix(pack: PermissionPack) -> Dict[str, Dict[str, bool]]:
    """
    Permission matrix the pack installs: every covered module gets all four
    actions, True only for the actions the pack lists.
    """
    matrix = {module: {action: False for action in RBAC_ACTIONS} for module in pack.modules}
    for entry in pack.permissions:
        for action in entry.actions:
            matrix[entry.module][action] = True
    return matrix


def pack_subviews(pack: PermissionPack) -> Dict[str, Dict[str, bool]]:
    """
    Subview visibility the pack installs per covered module.

    Listed subviews are True and the other catalog subviews of the module
    are explicitly False, since an absent key would be visible. A covered
    module with no listed subviews gets an empty map (everything visible).
    """
    enabled_by_module: Dict[str, set] = {module: set() for module in pack.modules}
    for module, subviews in pack.default_subviews.items():
        enabled_by_module[module].update(subviews)
    for entry in pack.permissions:
        enabled_by_module[entry.module].update(entry.subviews)

    result: Dict[str, Dict[str, bool]] = {}
    for module, enabled in enabled_by_module.items():
        if not enabled:
            result[module] = {}
            continue
        catalog = SUBVIEWS.get(module, ())
        subviews = {key: key in enabled for key in catalog}
        subviews.update({key: True for key in enabled})
        result[module] = subviews
    return result


def apply_pack_to_state(
    pack: PermissionPack,
    permissions: Mapping[str, Mapping[str, bool]],
    module_views: Mapping[str, ModuleViewConfig],
) -> Tuple[Dict[str, Dict[str, bool]], Dict[str, ModuleViewConfig]]:
    """
    New (permissions, module_views) after applying ``pack``.

    Covered modules are overwritten wholesale (layouts are kept); other
    modules are copied unchanged. Applying the same pack again yields the
    same state.
    """
    new_permissions = {module: dict(actions) for module, actions in permissions.items()}
    new_views = dict(module_views)

    subviews = pack_subviews(pack)
    for module, actions in pack_matrix(pack).items():
        new_permissions[module] = dict(actions)
        previous = new_views.get(module)
        new_views[module] = ModuleViewConfig(
            subviews_enabled=subviews[module],
            layout=previous.layout if previous else None,
        )
    return new_permissions, new_views
