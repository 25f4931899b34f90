"""
Strapi connector for CMS-managed configuration values.

Two Strapi collections feed the CMS layer:

* ``configs``: registry entries with a config ``key``, a JSON ``value`` and
  an ``is_active`` switch; inactive entries are ignored.
* ``feature-flags``: records with a ``key`` and an ``enabled`` boolean,
  exposed as ``feature_flags.<key>``.

The connector is best-effort: every failure is reported as
CmsUnavailableError and the caller resolves without the CMS.
"""
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
import httpx

from planbase.core import config
from planbase.core.cache import TTLCache
from planbase.core.exceptions import CmsUnavailableError
from planbase.utils import get_logger


log = get_logger(__name__)

CONFIGS_PATH = "/configs"
FEATURE_FLAGS_PATH = "/feature-flags"
FEATURE_FLAG_PREFIX = "feature_flags."
PAGE_SIZE = 100


@dataclass(frozen=True)
class CmsSnapshot:
    values: Dict[str, Any]
    fetched_at: datetime


def _fields(item: Any) -> Optional[Dict[str, Any]]:
    # Strapi v4 wraps fields in "attributes"; v5 returns them flat.
    if not isinstance(item, dict):
        return None
    fields = item.get("attributes", item)
    if not isinstance(fields, dict):
        return None
    key = fields.get("key")
    if not isinstance(key, str) or not key:
        return None
    return fields


def _data(payload: Any) -> List[Any]:
    if not isinstance(payload, dict) or not isinstance(payload.get("data"), list):
        raise CmsUnavailableError("Malformed Strapi response: missing data list")
    return payload["data"]


def parse_config_entries(payload: Any) -> Dict[str, Any]:
    """
    Extract ``{key: value}`` from a ``configs`` collection response.

    Entries with ``is_active`` set to false are skipped; entries without the
    field count as active.

    Raises:
        CmsUnavailableError: if the payload has no ``data`` list
    """
    values: Dict[str, Any] = {}
    for item in _data(payload):
        fields = _fields(item)
        if fields is None:
            log.warning("Skipping malformed Strapi config entry: %r", item)
            continue
        if not fields.get("is_active", True):
            continue
        values[fields["key"]] = fields.get("value")
    return values


def parse_feature_flags(payload: Any) -> Dict[str, bool]:
    """
    Extract ``{feature_flags.<key>: enabled}`` from a ``feature-flags`` response.

    Raises:
        CmsUnavailableError: if the payload has no ``data`` list
    """
    flags: Dict[str, bool] = {}
    for item in _data(payload):
        fields = _fields(item)
        if fields is None:
            log.warning("Skipping malformed Strapi feature flag: %r", item)
            continue
        key = fields["key"]
        if not key.startswith(FEATURE_FLAG_PREFIX):
            key = FEATURE_FLAG_PREFIX + key
        flags[key] = bool(fields.get("enabled"))
    return flags


class StrapiClient:
    """
    Fetches CMS config values from Strapi and keeps the last snapshot for ``cache_ttl``.

    Usage:
        client = StrapiClient(base_url="https://cms.example.com", api_token="...")
        snapshot = await client.get_snapshot()
    """

    def __init__(
        self,
        base_url: Optional[str],
        api_token: Optional[str] = None,
        timeout: float = 5.0,
        cache_ttl: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.api_token = api_token
        self.timeout = timeout
        self._transport = transport
        self._cache: TTLCache[CmsSnapshot] = TTLCache(cache_ttl, clock or time.monotonic)

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    async def _fetch_collection(self, client: httpx.AsyncClient, path: str) -> List[Dict[str, Any]]:
        """Every page of one collection, as raw response payloads."""
        url = f"{self.base_url}/api{path}"
        payloads: List[Dict[str, Any]] = []
        page = 1
        while True:
            response = await client.get(
                url,
                headers=self._headers(),
                params={"pagination[page]": page, "pagination[pageSize]": PAGE_SIZE},
            )
            response.raise_for_status()
            payload = response.json()
            payloads.append(payload)

            meta = payload.get("meta") if isinstance(payload, dict) else None
            pagination = (meta or {}).get("pagination", {})
            if page >= int(pagination.get("pageCount", 1) or 1):
                break
            page += 1
        return payloads

    async def fetch_config_entries(self) -> Dict[str, Any]:
        """
        GET the configs registry and the feature flags, every page of both.

        Feature flags are applied after registry entries of the same key.

        Raises:
            CmsUnavailableError: on missing configuration, transport error,
                non-2xx status or malformed payload
        """
        if not self.configured:
            raise CmsUnavailableError("STRAPI_URL is not configured")

        values: Dict[str, Any] = {}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                for payload in await self._fetch_collection(client, CONFIGS_PATH):
                    values.update(parse_config_entries(payload))
                for payload in await self._fetch_collection(client, FEATURE_FLAGS_PATH):
                    values.update(parse_feature_flags(payload))
        except httpx.HTTPStatusError as e:
            raise CmsUnavailableError(f"Strapi {e.response.status_code}: {e.response.text[:200]}") from e
        except httpx.HTTPError as e:
            raise CmsUnavailableError(f"Strapi unreachable: {e}") from e
        except ValueError as e:
            raise CmsUnavailableError(f"Strapi returned invalid JSON: {e}") from e

        return values

    async def get_snapshot(self, refresh: bool = False) -> CmsSnapshot:
        """Cached snapshot of CMS values; ``refresh`` bypasses the cache."""
        if not refresh:
            cached = self._cache.get("snapshot")
            if cached is not None:
                return cached

        values = await self.fetch_config_entries()
        snapshot = CmsSnapshot(values=values, fetched_at=datetime.now(timezone.utc))
        self._cache.set("snapshot", snapshot)
        log.info("Fetched %d config entries from Strapi", len(values))
        return snapshot


def build_strapi_client() -> StrapiClient:
    """Client configured from the environment."""
    return StrapiClient(
        base_url=config.STRAPI_URL,
        api_token=config.STRAPI_API_TOKEN,
        timeout=config.STRAPI_TIMEOUT,
        cache_ttl=config.STRAPI_CACHE_TTL,
    )
