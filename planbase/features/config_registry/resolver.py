"""
Pure configuration resolution.

Layers are evaluated in order and the last layer defining a key wins:

    defaults -> strapi (CMS) -> db:system -> db:account -> db:user -> db:project

Values are replaced wholesale; lists and objects from a lower layer are
never merged into those of a higher one.
"""
import copy
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional

from planbase.utils import get_logger


log = get_logger(__name__)


class SourceTag(str, enum.Enum):
    """Layer that produced the winning value of a resolved key."""
    DEFAULT = "default"
    STRAPI = "strapi"
    DB = "db"


@dataclass(frozen=True)
class ResolveContext:
    """Who the configuration is resolved for. ``account_id`` is the organization id."""
    account_id: Optional[str] = None
    user_id: Optional[str] = None
    project_id: Optional[str] = None

    @property
    def cache_key(self) -> str:
        return f"{self.account_id or 'system'}:{self.user_id or 'none'}:{self.project_id or 'none'}"


@dataclass(frozen=True)
class ConfigLayer:
    """
    One source of configuration values.

    ``updated_at`` is either a single timestamp for the whole layer or a
    per-key mapping (Registry Store rows carry their own timestamps).
    """
    source: SourceTag
    values: Mapping[str, Any]
    updated_at: Mapping[str, datetime] | datetime
    name: str = ""

    def timestamp_for(self, key: str) -> datetime:
        if isinstance(self.updated_at, datetime):
            return self.updated_at
        return self.updated_at[key]


@dataclass(frozen=True)
class ResolvedSource:
    source: SourceTag
    resolved_at: datetime


@dataclass(frozen=True)
class ResolutionMeta:
    resolved_at: datetime
    account_id: Optional[str]
    user_id: Optional[str]
    project_id: Optional[str]
    strapi_available: bool

    @property
    def cms_available(self) -> bool:
        return self.strapi_available


@dataclass
class ResolvedConfig:
    effective: Dict[str, Any]
    sources: Dict[str, ResolvedSource]
    meta: ResolutionMeta
    overrides: Dict[str, Any] = field(default_factory=dict)

    def get(self, key: str, default: Any = None) -> Any:
        """Effective value of ``key``; unknown keys give ``default`` rather than an error."""
        return self.effective.get(key, default)


def resolve_config(
    context: ResolveContext,
    layers: Iterable[ConfigLayer],
    strapi_available: bool,
    now: Optional[datetime] = None,
) -> ResolvedConfig:
    """
    Merge ``layers`` into one effective configuration.

    Every key defined by any layer appears in ``effective`` and ``sources``.
    ``overrides`` collects the values contributed by the db layers, which is
    what an administrator has customized for this context.
    """
    effective: Dict[str, Any] = {}
    sources: Dict[str, ResolvedSource] = {}
    overrides: Dict[str, Any] = {}

    for layer in layers:
        for key, value in layer.values.items():
            effective[key] = copy.deepcopy(value)
            sources[key] = ResolvedSource(source=layer.source, resolved_at=layer.timestamp_for(key))
            if layer.source is SourceTag.DB:
                overrides[key] = copy.deepcopy(value)

    meta = ResolutionMeta(
        resolved_at=now or datetime.now(timezone.utc),
        account_id=context.account_id,
        user_id=context.user_id,
        project_id=context.project_id,
        strapi_available=strapi_available,
    )
    log.debug(
        "Resolved %d config keys for %s (%d overridden, strapi=%s)",
        len(effective), context.cache_key, len(overrides), strapi_available
    )
    return ResolvedConfig(effective=effective, sources=sources, meta=meta, overrides=overrides)


def feature_flags_from(effective: Mapping[str, Any]) -> Dict[str, bool]:
    """``{flag_key: enabled}`` for every ``feature_flags.*`` key of an effective config."""
    return {
        key: bool(value)
        for key, value in effective.items()
        if key.startswith("feature_flags.")
    }
