"""
Tests for per-user time-block overrides.

Covers:
- Store upsert (one row per user and block) and delete
- Validation of block ids, labels and times before any store access
- NotFound when clearing a block without an override
- Every change invalidates all of the user's cached day views
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import delete, func, select

from src.lib.exceptions import NotFoundError, StoreError, ValidationError
from src.lib.security import hash_uid
from src.models.time_block_override import TimeBlockOverride
from src.models.user import User
from src.services.block_overrides import BlockCustomizer, BlockOverride
from src.services.day_cache import DAY_GENERATION_PREFIX


async def _overrides(db_session):
    result = await db_session.execute(
        select(TimeBlockOverride).order_by(TimeBlockOverride.id).execution_options(populate_existing=True)
    )
    return result.scalars().all()


# =============================================================================
# Store
# =============================================================================


class TestBlockOverrideStore:
    """Persistence of TimeBlockOverride rows."""

    @pytest.mark.asyncio
    async def test_empty(self, override_store, user):
        assert await override_store.list_overrides(user.id) == {}

    @pytest.mark.asyncio
    async def test_save_and_list(self, override_store, user):
        saved = BlockOverride(block_id="tb-06h-001", label="Gym", time="06:30")
        await override_store.save_override(user.id, saved)
        assert await override_store.list_overrides(user.id) == {"tb-06h-001": saved}

    @pytest.mark.asyncio
    async def test_save_replaces_existing(self, override_store, user, db_session):
        await override_store.save_override(user.id, BlockOverride(block_id="tb-06h-001", label="Gym"))
        await override_store.save_override(user.id, BlockOverride(block_id="tb-06h-001", is_hidden=True))

        (row,) = await _overrides(db_session)
        assert row.label is None
        assert row.is_hidden is True

    @pytest.mark.asyncio
    async def test_delete(self, override_store, user, db_session):
        await override_store.save_override(user.id, BlockOverride(block_id="tb-06h-001", label="Gym"))
        assert await override_store.delete_override(user.id, "tb-06h-001") is True
        assert await override_store.delete_override(user.id, "tb-06h-001") is False
        assert await db_session.scalar(select(func.count()).select_from(TimeBlockOverride)) == 0

    @pytest.mark.asyncio
    async def test_rows_removed_with_user(self, override_store, user, db_session):
        await override_store.save_override(user.id, BlockOverride(block_id="tb-06h-001", label="Gym"))
        await db_session.execute(delete(User).where(User.id == user.id))
        await db_session.commit()
        assert await db_session.scalar(select(func.count()).select_from(TimeBlockOverride)) == 0


class TestBlockOverrideView:
    """Tests for the BlockOverride value."""

    def test_is_custom(self):
        assert BlockOverride(block_id="b", label="Gym").is_custom is True
        assert BlockOverride(block_id="b", time="06:30").is_custom is True
        assert BlockOverride(block_id="b", is_hidden=True).is_custom is False

    def test_to_dict(self):
        assert BlockOverride(block_id="b", label="Gym").to_dict() == {
            "block_id": "b",
            "label": "Gym",
            "time": None,
            "is_hidden": False,
        }


# =============================================================================
# Customizer
# =============================================================================


class TestBlockCustomizer:
    """Validation and cache invalidation around the store."""

    @pytest.mark.asyncio
    async def test_set_normalizes(self, customizer, ctx):
        override = await customizer.set_block_override(ctx, "tb-06h-001", label="  Gym  ", time="6:30")
        assert override == BlockOverride(block_id="tb-06h-001", label="Gym", time="06:30")

    @pytest.mark.asyncio
    async def test_label_capped(self, customizer, ctx):
        override = await customizer.set_block_override(ctx, "tb-06h-001", label="x" * 300)
        assert len(override.label) == 100

    @pytest.mark.asyncio
    async def test_hide_only(self, customizer, ctx, db_session):
        await customizer.set_block_override(ctx, "tb-06h-001", hidden=True)
        (row,) = await _overrides(db_session)
        assert row.is_hidden is True
        assert row.label is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs",
        [
            {},
            {"label": "   "},
            {"time": "25:00"},
            {"time": "noon"},
        ],
    )
    async def test_rejected_before_store(self, mock_redis, ctx, kwargs):
        store = AsyncMock()
        customizer = BlockCustomizer(store, redis_service=mock_redis)
        with pytest.raises(ValidationError):
            await customizer.set_block_override(ctx, "tb-06h-001", **kwargs)
        store.save_override.assert_not_called()
        mock_redis.incr.assert_not_called()

    @pytest.mark.asyncio
    async def test_bad_block_id(self, customizer, ctx):
        with pytest.raises(ValidationError):
            await customizer.set_block_override(ctx, "", label="Gym")

    @pytest.mark.asyncio
    async def test_set_bumps_user_generation(self, customizer, ctx, redis_store):
        await customizer.set_block_override(ctx, "tb-06h-001", label="Gym")
        assert redis_store[f"{DAY_GENERATION_PREFIX}{hash_uid(ctx.user_id)}"] == "1"

    @pytest.mark.asyncio
    async def test_clear(self, customizer, ctx, db_session, redis_store):
        await customizer.set_block_override(ctx, "tb-06h-001", label="Gym")
        await customizer.clear_block_override(ctx, "tb-06h-001")
        assert await _overrides(db_session) == []
        assert redis_store[f"{DAY_GENERATION_PREFIX}{hash_uid(ctx.user_id)}"] == "2"

    @pytest.mark.asyncio
    async def test_clear_without_override(self, customizer, ctx, mock_redis):
        with pytest.raises(NotFoundError):
            await customizer.clear_block_override(ctx, "tb-06h-001")
        mock_redis.incr.assert_not_called()

    @pytest.mark.asyncio
    async def test_store_failure_leaves_cache_alone(self, mock_redis, ctx):
        store = AsyncMock()
        store.save_override.side_effect = StoreError("Failed to save time-block override")
        customizer = BlockCustomizer(store, redis_service=mock_redis)
        with pytest.raises(StoreError):
            await customizer.set_block_override(ctx, "tb-06h-001", label="Gym")
        mock_redis.incr.assert_not_called()
