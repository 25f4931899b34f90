"""
Compiled-in configuration defaults: the fallback layer of last resort.

Every value here can be replaced wholesale by the CMS or a Registry Store
override under the same key.
"""
import copy
from datetime import datetime, timezone
from typing import Any, Dict

from planbase.features.permissions.constants import RBAC_MODULES, feature_flag_key


# Timestamp reported as ``resolvedAt`` for keys won by the default layer.
DEFAULTS_LOADED_AT = datetime.now(timezone.utc)


PROJECT_STAGES = [
    {"key": "prospection", "label": "Prospection", "order": 10},
    {"key": "signe", "label": "Signé", "order": 20},
    {"key": "en_cours", "label": "En cours", "order": 30},
    {"key": "livre", "label": "Livré", "order": 40},
    {"key": "termine", "label": "Terminé", "order": 50, "isTerminal": True},
    {"key": "abandonne", "label": "Abandonné", "order": 55, "isTerminal": True},
    {"key": "archive", "label": "Archivé", "order": 60, "isTerminal": True},
    {"key": "annule", "label": "Annulé", "order": 70, "isTerminal": True},
]

TASK_PRIORITIES = [
    {"key": "low", "label": "Basse", "order": 10},
    {"key": "medium", "label": "Moyenne", "order": 20},
    {"key": "high", "label": "Haute", "order": 30},
]

TASK_STATUSES = [
    {"key": "todo", "label": "À faire", "order": 10},
    {"key": "in_progress", "label": "En cours", "order": 20},
    {"key": "review", "label": "En révision", "order": 30},
    {"key": "done", "label": "Terminé", "order": 40, "isTerminal": True},
]

BILLING_STATUSES = [
    {"key": "brouillon", "label": "Brouillon", "order": 10, "color": "#C4B5FD"},
    {"key": "devis_envoye", "label": "Devis envoyé", "order": 20, "color": "#FDE047"},
    {"key": "devis_accepte", "label": "Devis accepté", "order": 30, "color": "#93C5FD"},
    {"key": "bon_commande", "label": "BDC émis", "order": 40, "color": "#93C5FD"},
    {"key": "facture", "label": "Facturé", "order": 50, "color": "#93C5FD"},
    {"key": "paye", "label": "Payé", "order": 60, "color": "#86EFAC", "isTerminal": True},
    {"key": "partiel", "label": "Partiel", "order": 70, "color": "#5EEAD4"},
    {"key": "annule", "label": "Annulé", "order": 80, "color": "#D1D5DB", "isTerminal": True},
    {"key": "retard", "label": "Retard", "order": 90, "color": "#FCA5A5"},
]

TIME_CATEGORIES = [
    {"key": "development", "label": "Développement", "color": "#7C3AED"},
    {"key": "design", "label": "Design", "color": "#06B6D4"},
    {"key": "meeting", "label": "Réunion", "color": "#F59E0B"},
    {"key": "planning", "label": "Planification", "color": "#3B82F6"},
    {"key": "research", "label": "Recherche", "color": "#8B5CF6"},
    {"key": "testing", "label": "Tests", "color": "#10B981"},
    {"key": "documentation", "label": "Documentation", "color": "#6B7280"},
    {"key": "support", "label": "Support", "color": "#EF4444"},
    {"key": "review", "label": "Revue de code", "color": "#EC4899"},
    {"key": "other", "label": "Autre", "color": "#9CA3AF"},
]

THRESHOLDS = {
    "billing": {
        "overdueWarningDays": 15,
        "overdueCriticalDays": 30,
        "paymentReminderDays": 7,
    },
    "projects": {
        "budgetWarningPercent": 80,
        "budgetCriticalPercent": 95,
        "deadlineWarningDays": 7,
        "deadlineCriticalDays": 2,
    },
    "tasks": {
        "overdueWarningDays": 3,
        "overdueCriticalDays": 7,
        "maxTasksPerColumn": 20,
    },
    "time": {
        "dailyTargetHours": 8,
        "weeklyTargetHours": 40,
        "overtimeThresholdHours": 10,
        "minEntryMinutes": 15,
    },
    "reports": {
        "defaultDateRangeDays": 30,
        "maxExportRecords": 5000,
        "chartMaxDataPoints": 100,
    },
    "dashboard": {
        "recentActivitiesCount": 20,
        "upcomingTasksDays": 7,
        "overdueTasksWarning": 5,
    },
}


_DEFAULT_CONFIGS: Dict[str, Any] = {
    "project.stages": PROJECT_STAGES,
    "task.priorities": TASK_PRIORITIES,
    "task.statuses": TASK_STATUSES,
    "billing.statuses": BILLING_STATUSES,
    "time.categories": TIME_CATEGORIES,
    "thresholds": THRESHOLDS,
    **{feature_flag_key(module): True for module in RBAC_MODULES},
}

DEFAULT_CONFIG_KEYS = tuple(_DEFAULT_CONFIGS)


def get_all_default_configs() -> Dict[str, Any]:
    """Deep copy of every compiled-in default, keyed by config key."""
    return copy.deepcopy(_DEFAULT_CONFIGS)
