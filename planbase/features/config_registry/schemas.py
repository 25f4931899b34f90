"""
Pydantic schemas for the config registry API.
"""
from datetime import datetime
from typing import Any, Dict, Literal, Optional
from pydantic import Field, model_validator

from planbase.core.schemas import CamelModel
from planbase.features.config_registry.resolver import ResolvedConfig, SourceTag


class SourceInfo(CamelModel):
    source: SourceTag
    resolved_at: datetime


class ConfigMeta(CamelModel):
    resolved_at: datetime
    account_id: Optional[str] = None
    user_id: Optional[str] = None
    project_id: Optional[str] = None
    strapi_available: bool
    cms_available: bool


class ConfigResponse(CamelModel):
    """
    Effective configuration with the winning source of every key.

    ``overrides`` holds only the Registry Store values that apply to the
    context, i.e. what administrators customized.
    """
    effective: Dict[str, Any]
    overrides: Dict[str, Any]
    sources: Dict[str, SourceInfo]
    meta: ConfigMeta

    @classmethod
    def from_resolved(cls, resolved: ResolvedConfig) -> "ConfigResponse":
        meta = resolved.meta
        return cls(
            effective=resolved.effective,
            overrides=resolved.overrides,
            sources={
                key: SourceInfo(source=entry.source, resolved_at=entry.resolved_at)
                for key, entry in resolved.sources.items()
            },
            meta=ConfigMeta(
                resolved_at=meta.resolved_at,
                account_id=meta.account_id,
                user_id=meta.user_id,
                project_id=meta.project_id,
                strapi_available=meta.strapi_available,
                cms_available=meta.cms_available,
            ),
        )


class SettingUpdate(CamelModel):
    """Override written to the Registry Store."""
    value: Any
    scope: Literal["account", "user", "project"] = "account"
    scope_id: Optional[str] = Field(None, description="Required for project scope; defaults to the caller for user scope")

    @model_validator(mode="after")
    def project_scope_needs_id(self) -> "SettingUpdate":
        if self.scope == "project" and not self.scope_id:
            raise ValueError("scopeId is required for project scope")
        return self


class SettingResponse(CamelModel):
    id: str
    key: str
    value: Any
    scope: str
    scope_id: Optional[str] = None
    organization_id: Optional[str] = None
    version: int
    source: str
    updated_by_id: Optional[str] = None
    updated_at: datetime
