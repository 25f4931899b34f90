"""Tests for the Strapi CMS connector."""

from __future__ import annotations

import httpx
import pytest

from planbase.core.exceptions import CmsUnavailableError
from planbase.features.config_registry.strapi import StrapiClient, parse_config_entries, parse_feature_flags


def collections_handler(configs, flags=None):
    """
    MockTransport handler serving the configs registry (list of pages) and
    the feature flags collection, recording requests.
    """
    collections = {"/api/configs": configs, "/api/feature-flags": flags or [[]]}
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        pages = collections.get(request.url.path)
        if pages is None:
            return httpx.Response(404, text="not found")
        page = int(request.url.params.get("pagination[page]", "1"))
        return httpx.Response(
            200,
            json={
                "data": pages[page - 1],
                "meta": {"pagination": {"page": page, "pageCount": len(pages)}},
            },
        )

    return handler, calls


def make_client(handler, clock=None, **kwargs) -> StrapiClient:
    return StrapiClient(
        base_url="https://cms.example.com/",
        api_token="secret",
        transport=httpx.MockTransport(handler),
        clock=clock,
        **kwargs,
    )


class TestParseConfigEntries:
    """Tests for registry payload parsing."""

    def test_v4_attributes_envelope(self) -> None:
        payload = {"data": [{"id": 1, "attributes": {"key": "thresholds", "value": {"a": 1}, "is_active": True}}]}
        assert parse_config_entries(payload) == {"thresholds": {"a": 1}}

    def test_v5_flat_entries(self) -> None:
        payload = {"data": [{"id": 1, "key": "task.statuses", "value": ["todo"], "is_active": True}]}
        assert parse_config_entries(payload) == {"task.statuses": ["todo"]}

    def test_inactive_entries_are_skipped(self) -> None:
        payload = {"data": [
            {"key": "thresholds", "value": {"a": 1}, "is_active": False},
            {"key": "task.statuses", "value": ["todo"]},
        ]}
        assert parse_config_entries(payload) == {"task.statuses": ["todo"]}

    def test_malformed_entries_are_skipped(self) -> None:
        payload = {"data": [{"value": 1}, "junk", {"key": "", "value": 2}, {"key": "ok", "value": 3}]}
        assert parse_config_entries(payload) == {"ok": 3}

    def test_missing_data_list(self) -> None:
        with pytest.raises(CmsUnavailableError):
            parse_config_entries({"error": "nope"})


class TestParseFeatureFlags:
    """Tests for feature flag payload parsing."""

    def test_keys_are_prefixed(self) -> None:
        payload = {"data": [
            {"key": "crm_module", "enabled": False},
            {"attributes": {"key": "notes_module", "enabled": True}},
        ]}
        assert parse_feature_flags(payload) == {
            "feature_flags.crm_module": False,
            "feature_flags.notes_module": True,
        }

    def test_prefixed_key_is_kept(self) -> None:
        payload = {"data": [{"key": "feature_flags.crm_module", "enabled": True}]}
        assert parse_feature_flags(payload) == {"feature_flags.crm_module": True}

    def test_missing_enabled_is_off(self) -> None:
        assert parse_feature_flags({"data": [{"key": "tasks_module"}]}) == {"feature_flags.tasks_module": False}


class TestStrapiClient:
    """Tests for fetching and snapshot caching."""

    @pytest.mark.asyncio
    async def test_fetches_all_pages_with_token(self) -> None:
        handler, calls = collections_handler([
            [{"key": "a", "value": 1, "is_active": True}],
            [{"key": "b", "value": 2, "is_active": True}],
        ])
        values = await make_client(handler).fetch_config_entries()
        assert values == {"a": 1, "b": 2}
        assert [call.url.path for call in calls] == ["/api/configs", "/api/configs", "/api/feature-flags"]
        assert calls[0].headers["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_feature_flags_join_registry_values(self) -> None:
        handler, _ = collections_handler(
            [[{"key": "thresholds", "value": {"margin": 0.2}, "is_active": True}]],
            [[{"key": "crm_module", "enabled": False}]],
        )
        values = await make_client(handler).fetch_config_entries()
        assert values == {"thresholds": {"margin": 0.2}, "feature_flags.crm_module": False}

    @pytest.mark.asyncio
    async def test_snapshot_is_cached_until_ttl(self, clock) -> None:
        handler, calls = collections_handler([[{"key": "a", "value": 1}]])
        client = make_client(handler, clock=clock, cache_ttl=300)
        first = await client.get_snapshot()
        await client.get_snapshot()
        assert len(calls) == 2

        await client.get_snapshot(refresh=True)
        assert len(calls) == 4

        clock.advance(301)
        await client.get_snapshot()
        assert len(calls) == 6
        assert first.values == {"a": 1}

    @pytest.mark.asyncio
    async def test_http_error_is_unavailable(self) -> None:
        client = make_client(lambda request: httpx.Response(503, text="down"))
        with pytest.raises(CmsUnavailableError, match="503"):
            await client.fetch_config_entries()

    @pytest.mark.asyncio
    async def test_missing_collection_is_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/api/feature-flags":
                return httpx.Response(404, text="not found")
            return httpx.Response(200, json={"data": [], "meta": {"pagination": {"pageCount": 1}}})

        with pytest.raises(CmsUnavailableError, match="404"):
            await make_client(handler).fetch_config_entries()

    @pytest.mark.asyncio
    async def test_transport_error_is_unavailable(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(CmsUnavailableError, match="unreachable"):
            await make_client(handler).fetch_config_entries()

    @pytest.mark.asyncio
    async def test_invalid_json_is_unavailable(self) -> None:
        client = make_client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(CmsUnavailableError):
            await client.fetch_config_entries()

    @pytest.mark.asyncio
    async def test_not_configured(self) -> None:
        client = StrapiClient(base_url=None)
        assert client.configured is False
        with pytest.raises(CmsUnavailableError):
            await client.get_snapshot()
