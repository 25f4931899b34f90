"""
Config service: loads every layer for a context and caches resolutions.

Scope hierarchy of Registry Store overrides (later wins):
SYSTEM -> ACCOUNT -> USER -> PROJECT
"""
from typing import Any, Dict, List, Optional
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from planbase.core.cache import TTLCache
from planbase.core.database.engine import has_uncommitted_writes, on_commit
from planbase.core.exceptions import CmsUnavailableError
from planbase.features.config_registry.defaults import DEFAULTS_LOADED_AT, get_all_default_configs
from planbase.features.config_registry.models import Setting
from planbase.features.config_registry.resolver import (
    ConfigLayer,
    ResolveContext,
    ResolvedConfig,
    SourceTag,
    feature_flags_from,
    resolve_config,
)
from planbase.features.config_registry.strapi import StrapiClient
from planbase.utils import get_logger


log = get_logger(__name__)


class ConfigService:
    """
    Resolves effective configuration per (account, user, project) context.

    The resolution cache is owned by the service and passed in, so callers
    decide its TTL and tests can observe or bypass it.
    """

    def __init__(self, strapi: Optional[StrapiClient] = None, cache: Optional[TTLCache[ResolvedConfig]] = None):
        self.strapi = strapi
        self.cache: TTLCache[ResolvedConfig] = cache if cache is not None else TTLCache(ttl=60)

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    async def get_settings_by_scope(
        self,
        db: AsyncSession,
        scope: str,
        scope_id: Optional[str] = None,
        organization_id: Optional[str] = None
    ) -> ConfigLayer:
        """Registry Store overrides at one scope as a db layer."""
        stmt = select(Setting).where(Setting.scope == scope)
        if scope == "system":
            stmt = stmt.where(Setting.scope_id.is_(None))
        else:
            stmt = stmt.where(Setting.scope_id == scope_id, Setting.organization_id == organization_id)

        result = await db.execute(stmt)
        rows = result.scalars().all()
        return ConfigLayer(
            source=SourceTag.DB,
            values={row.key: row.value for row in rows},
            updated_at={row.key: row.updated_at for row in rows},
            name=f"db:{scope}",
        )

    async def load_db_layers(self, db: AsyncSession, context: ResolveContext) -> List[ConfigLayer]:
        """
        System, account, user and project layers for ``context``.

        User and project overrides are read only within the context's
        account; without an account only the system layer applies.
        """
        layers = [await self.get_settings_by_scope(db, "system")]
        if not context.account_id:
            return layers

        scopes = [("account", context.account_id)]
        if context.user_id:
            scopes.append(("user", context.user_id))
        if context.project_id:
            scopes.append(("project", context.project_id))

        for scope, scope_id in scopes:
            layers.append(await self.get_settings_by_scope(db, scope, scope_id, context.account_id))
        return layers

    async def load_strapi_layer(self, refresh: bool = False) -> Optional[ConfigLayer]:
        """CMS layer, or None when the CMS is not configured or unreachable."""
        if self.strapi is None:
            return None
        try:
            snapshot = await self.strapi.get_snapshot(refresh=refresh)
        except CmsUnavailableError as e:
            log.warning("Strapi unavailable, resolving without CMS values: %s", e)
            return None
        return ConfigLayer(
            source=SourceTag.STRAPI,
            values=snapshot.values,
            updated_at=snapshot.fetched_at,
            name="strapi",
        )

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def resolve(
        self,
        db: AsyncSession,
        context: ResolveContext,
        refresh: bool = False
    ) -> ResolvedConfig:
        """
        Effective configuration for ``context``.

        Served from cache within the TTL unless ``refresh`` is set. A session
        holding uncommitted overrides neither reads nor fills the cache. A
        failing Registry Store read is logged and the remaining layers still
        resolve.
        """
        use_cache = not has_uncommitted_writes(db)
        if use_cache and not refresh:
            cached = self.cache.get(context.cache_key)
            if cached is not None:
                return cached

        layers: List[ConfigLayer] = [
            ConfigLayer(
                source=SourceTag.DEFAULT,
                values=get_all_default_configs(),
                updated_at=DEFAULTS_LOADED_AT,
                name="defaults",
            )
        ]

        strapi_layer = await self.load_strapi_layer(refresh=refresh)
        if strapi_layer is not None:
            layers.append(strapi_layer)

        try:
            layers.extend(await self.load_db_layers(db, context))
        except SQLAlchemyError:
            log.exception("Error loading config overrides for %s, using defaults", context.cache_key)

        resolved = resolve_config(context, layers, strapi_available=strapi_layer is not None)
        if use_cache:
            self.cache.set(context.cache_key, resolved)
        return resolved

    async def get_feature_flags(self, db: AsyncSession, context: ResolveContext) -> Dict[str, bool]:
        resolved = await self.resolve(db, context)
        return feature_flags_from(resolved.effective)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def update_setting(
        self,
        db: AsyncSession,
        key: str,
        value: Any,
        scope: str,
        scope_id: Optional[str],
        organization_id: Optional[str] = None,
        updated_by: Optional[str] = None
    ) -> Setting:
        """
        Write an override. An existing row at the same (key, scope, scope_id,
        organization) is superseded in place and its version incremented.

        Account overrides belong to the organization they name; user and
        project overrides need ``organization_id``.

        Raises:
            ValueError: user or project scope without an organization
        """
        if scope == "system":
            scope_id = organization_id = None
        elif scope == "account":
            organization_id = scope_id
        if scope != "system" and (not scope_id or not organization_id):
            raise ValueError(f"{scope} overrides need a scope id and an organization")

        stmt = select(Setting).where(Setting.key == key, Setting.scope == scope)
        if scope == "system":
            stmt = stmt.where(Setting.scope_id.is_(None))
        else:
            stmt = stmt.where(Setting.scope_id == scope_id, Setting.organization_id == organization_id)
        result = await db.execute(stmt)
        setting = result.scalar_one_or_none()

        if setting is None:
            setting = Setting(
                key=key,
                value=value,
                scope=scope,
                scope_id=scope_id,
                organization_id=organization_id,
                version=1,
                source="customized",
                updated_by_id=updated_by,
            )
            db.add(setting)
        else:
            setting.value = value
            setting.version = setting.version + 1
            setting.source = "customized"
            setting.updated_by_id = updated_by

        await db.flush()
        await db.refresh(setting)
        log.info("Setting %s written at %s:%s in %s (v%d)", key, scope, scope_id, organization_id, setting.version)

        self.invalidate_cache(scope, scope_id, organization_id)
        on_commit(db, lambda: self.invalidate_cache(scope, scope_id, organization_id))
        return setting

    def invalidate_cache(
        self,
        scope: str = "system",
        scope_id: Optional[str] = None,
        organization_id: Optional[str] = None
    ) -> None:
        """
        Drop cached resolutions affected by a write at ``scope``.

        System writes clear everything; account writes clear every context of
        that account; user and project writes clear contexts of the
        organization naming the id.
        """
        if scope == "system" or not scope_id:
            self.cache.clear()
            return

        def affected(cache_key: str) -> bool:
            account_id, user_id, project_id = cache_key.split(":")
            if scope == "account":
                return account_id == scope_id
            if account_id != organization_id:
                return False
            if scope == "user":
                return user_id == scope_id
            if scope == "project":
                return project_id == scope_id
            return False

        dropped = self.cache.invalidate(affected)
        log.debug("Invalidated %d cached configs for %s:%s", dropped, scope, scope_id)
