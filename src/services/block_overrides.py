"""
Per-user time-block overrides for AMP Tracker.

A user can relabel a template time block, move its display time or hide it.
Overrides are keyed by ``(user_id, block_id)`` and applied at hydration
time on top of the role's active template, so they survive template
version changes for every block id the new version still carries.

Usage:
    customizer = BlockCustomizer(BlockOverrideStore(session))
    await customizer.set_block_override(ctx, "tb-06h-001", label="Gym")
    await customizer.clear_block_override(ctx, "tb-06h-001")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.config.limits import MAX_BLOCK_LABEL_LENGTH
from src.core.user_context import UserContext
from src.lib.dates import normalize_block_time
from src.lib.exceptions import NotFoundError, StoreError, ValidationError
from src.lib.security import InputSanitizer, hash_uid
from src.models.time_block_override import TimeBlockOverride
from src.services.day_cache import invalidate_user_days
from src.services.redis_service import RedisService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlockOverride:
    """A user's customization of one template block."""

    block_id: str
    label: str | None = None
    time: str | None = None
    is_hidden: bool = False

    @property
    def is_custom(self) -> bool:
        return bool(self.label or self.time)

    @classmethod
    def from_row(cls, row: TimeBlockOverride) -> BlockOverride:
        return cls(
            block_id=row.block_id,
            label=row.label,
            time=row.time,
            is_hidden=bool(row.is_hidden),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "block_id": self.block_id,
            "label": self.label,
            "time": self.time,
            "is_hidden": self.is_hidden,
        }


class BlockOverrideStore:
    """
    Persistence for TimeBlockOverride rows.

    Args:
        session: Async SQLAlchemy session (one per request)
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def _fail(self, message: str, exc: SQLAlchemyError) -> StoreError:
        await self.session.rollback()
        logger.exception(message)
        return StoreError(message)

    async def list_overrides(self, user_id: int) -> dict[str, BlockOverride]:
        """All overrides of a user, keyed by block id."""
        try:
            result = await self.session.execute(
                select(TimeBlockOverride).where(TimeBlockOverride.user_id == user_id)
            )
            rows = result.scalars().all()
        except SQLAlchemyError as exc:
            raise await self._fail("Failed to load time-block overrides", exc) from exc
        return {row.block_id: BlockOverride.from_row(row) for row in rows}

    async def _find(self, user_id: int, block_id: str) -> TimeBlockOverride | None:
        result = await self.session.execute(
            select(TimeBlockOverride).where(
                TimeBlockOverride.user_id == user_id,
                TimeBlockOverride.block_id == block_id,
            )
        )
        return result.scalar_one_or_none()

    async def save_override(self, user_id: int, override: BlockOverride) -> BlockOverride:
        """Create or replace the override of ``override.block_id``."""
        try:
            row = await self._find(user_id, override.block_id)
            if row is None:
                row = TimeBlockOverride(user_id=user_id, block_id=override.block_id)
                try:
                    async with self.session.begin_nested():
                        self._apply(row, override)
                        self.session.add(row)
                except IntegrityError:
                    # Created concurrently; overwrite that row
                    row = await self._find(user_id, override.block_id)
                    if row is None:
                        raise
                    self._apply(row, override)
            else:
                self._apply(row, override)
            await self.session.commit()
        except SQLAlchemyError as exc:
            raise await self._fail("Failed to save time-block override", exc) from exc
        return override

    @staticmethod
    def _apply(row: TimeBlockOverride, override: BlockOverride) -> None:
        row.label = override.label
        row.time = override.time
        row.is_hidden = override.is_hidden

    async def delete_override(self, user_id: int, block_id: str) -> bool:
        """Delete a block's override. Returns False when it had none."""
        try:
            result = await self.session.execute(
                delete(TimeBlockOverride).where(
                    TimeBlockOverride.user_id == user_id,
                    TimeBlockOverride.block_id == block_id,
                )
            )
            await self.session.commit()
        except SQLAlchemyError as exc:
            raise await self._fail("Failed to delete time-block override", exc) from exc
        return bool(result.rowcount)


class BlockCustomizer:
    """
    Validates and records a user's time-block overrides.

    Every change drops all of the user's cached day views, since an
    override applies to every day.

    Args:
        store: Override store bound to the request's session
        redis_service: Cache backend for day-view invalidation (singleton if None)
    """

    def __init__(self, store: BlockOverrideStore, redis_service: RedisService | None = None) -> None:
        self.store = store
        self.redis_service = redis_service

    async def set_block_override(
        self,
        ctx: UserContext,
        block_id: str,
        label: str | None = None,
        time: str | None = None,
        hidden: bool = False,
    ) -> BlockOverride:
        """
        Relabel, retime or hide a block for the user.

        Raises:
            ValidationError: Bad block id or time, or an override that
                changes nothing
        """
        InputSanitizer.require_identifier(block_id, "block_id")
        cleaned_label = InputSanitizer.clean_text(label, MAX_BLOCK_LABEL_LENGTH) or None
        normalized_time = normalize_block_time(time) if time else None
        if cleaned_label is None and normalized_time is None and not hidden:
            raise ValidationError("An override needs a label, a time or hidden=true")

        override = await self.store.save_override(
            ctx.user_id,
            BlockOverride(block_id=block_id, label=cleaned_label, time=normalized_time, is_hidden=hidden),
        )
        logger.info("Saved override of %s for user_hash=%s", block_id, hash_uid(ctx.user_id))
        await invalidate_user_days(ctx.user_id, redis_service=self.redis_service)
        return override

    async def clear_block_override(self, ctx: UserContext, block_id: str) -> None:
        """
        Restore the template's label, time and visibility for a block.

        Raises:
            NotFoundError: If the block has no override
        """
        InputSanitizer.require_identifier(block_id, "block_id")
        if not await self.store.delete_override(ctx.user_id, block_id):
            raise NotFoundError(f"No override for time block {block_id}")
        logger.info("Cleared override of %s for user_hash=%s", block_id, hash_uid(ctx.user_id))
        await invalidate_user_days(ctx.user_id, redis_service=self.redis_service)


__all__ = ["BlockOverride", "BlockOverrideStore", "BlockCustomizer"]
