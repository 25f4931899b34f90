"""
RBAC vocabulary: roles, modules, actions, subviews and role defaults.

Modules and actions are closed sets. Matrices are keyed by their string
values so they serialize to JSON unchanged.
"""
import enum
from typing import Dict, FrozenSet, List, Tuple


class RbacRole(str, enum.Enum):
    """Role of a user inside one organization."""
    ADMIN = "admin"
    MEMBER = "member"
    GUEST = "guest"


class RbacModule(str, enum.Enum):
    """Top-level functional areas of the application."""
    CRM = "crm"
    PROJECTS = "projects"
    PRODUCT = "product"
    ROADMAP = "roadmap"
    TASKS = "tasks"
    NOTES = "notes"
    DOCUMENTS = "documents"
    PROFITABILITY = "profitability"


class RbacAction(str, enum.Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


RBAC_ROLES: Tuple[str, ...] = tuple(r.value for r in RbacRole)
RBAC_MODULES: Tuple[str, ...] = tuple(m.value for m in RbacModule)
RBAC_ACTIONS: Tuple[str, ...] = tuple(a.value for a in RbacAction)
WRITE_ACTIONS: FrozenSet[str] = frozenset({"create", "update", "delete"})


# Named sub-sections of each module UI. Modules without entries have no
# independently configurable sections.
SUBVIEWS: Dict[str, Tuple[str, ...]] = {
    "crm": ("crm.clients", "crm.opportunities", "crm.kpis"),
    "projects": ("projects.list", "projects.details", "projects.scope", "projects.billing"),
    "product": (
        "product.backlog",
        "product.epics",
        "product.stats",
        "product.retrospective",
        "product.recipe",
    ),
    "roadmap": ("roadmap.gantt", "roadmap.output", "roadmap.okr", "roadmap.tree"),
    "documents": ("documents.list", "documents.upload", "documents.integrations"),
    "profitability": (
        "profitability.overview",
        "profitability.byProject",
        "profitability.simulations",
        "profitability.resources",
    ),
}


_ALL = ["read", "create", "update", "delete"]

# Permissions seeded when a membership is created or its role changes.
DEFAULT_PERMISSIONS: Dict[str, Dict[str, List[str]]] = {
    "admin": {module: list(_ALL) for module in RBAC_MODULES},
    "member": {
        "crm": ["read", "create", "update"],
        "projects": ["read", "create", "update"],
        "product": ["read", "create", "update"],
        "roadmap": ["read", "create", "update"],
        "tasks": list(_ALL),
        "notes": list(_ALL),
        "documents": ["read", "create", "update"],
        "profitability": ["read"],
    },
    "guest": {
        "crm": ["read"],
        "projects": ["read"],
        "product": ["read"],
        "roadmap": ["read"],
        "tasks": ["read"],
        "notes": ["read"],
        "documents": ["read"],
        "profitability": [],
    },
}


def feature_flag_key(module: str) -> str:
    """Config key of the flag that switches a whole module on or off."""
    return f"feature_flags.{module}_module"


def default_matrix_for_role(role: str) -> Dict[str, Dict[str, bool]]:
    """Full module → action → allowed matrix for a role's defaults."""
    allowed = DEFAULT_PERMISSIONS[role]
    return {
        module: {action: action in allowed.get(module, []) for action in RBAC_ACTIONS}
        for module in RBAC_MODULES
    }
