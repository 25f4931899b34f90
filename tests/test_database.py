"""Tests for the database helpers: primary keys and commit hooks."""

from __future__ import annotations

import pytest

from planbase.core.database.base import generate_ulid
from planbase.core.database.engine import has_uncommitted_writes, on_commit
from planbase.features.organizations.models import Organization


class TestGenerateUlid:
    """Tests for generate_ulid()."""

    def test_is_a_26_character_string(self) -> None:
        value = generate_ulid()
        assert isinstance(value, str)
        assert len(value) == 26

    def test_values_are_unique(self) -> None:
        assert len({generate_ulid() for _ in range(100)}) == 100

    @pytest.mark.asyncio
    async def test_used_as_primary_key_default(self, db) -> None:
        organization = Organization(name="Keyed")
        db.add(organization)
        await db.flush()
        assert len(organization.id) == 26


class TestCommitHooks:
    """Tests for on_commit()."""

    @pytest.mark.asyncio
    async def test_runs_after_commit(self, db) -> None:
        ran = []
        db.add(Organization(name="Committed"))
        await db.flush()
        on_commit(db, lambda: ran.append("done"))
        assert has_uncommitted_writes(db) is True
        assert ran == []

        await db.commit()
        assert ran == ["done"]
        assert has_uncommitted_writes(db) is False

    @pytest.mark.asyncio
    async def test_dropped_on_rollback(self, db) -> None:
        ran = []
        db.add(Organization(name="Discarded"))
        await db.flush()
        on_commit(db, lambda: ran.append("done"))

        await db.rollback()
        await db.commit()
        assert ran == []
        assert has_uncommitted_writes(db) is False
