"""
Day-Record Store for AMP Tracker.

Persistence for DayRecords and their completion rows. Every mutation is
field-scoped: completing an item is one INSERT guarded by a unique
constraint, retracting it is one DELETE, and checklist-level timestamps
are targeted UPDATEs. Two requests completing different items on the same
day therefore never overwrite each other.

Record creation races (two first writes for the same user and date) are
resolved by the ``(user_id, date)`` unique index: the loser of the race
rolls back its SAVEPOINT and re-reads the winner's row.

All SQLAlchemy failures are logged and re-raised as StoreError; this layer
performs no retries.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date, datetime
from functools import wraps
from typing import Any, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from src.core.timeblocks import CompletionRecord
from src.lib.exceptions import StoreError, ValidationError
from src.lib.security import hash_uid
from src.models.day_record import (
    BlockNote,
    ChecklistCompletion,
    ChecklistItemCompletion,
    DayRecord,
    TimeBlockCompletion,
    TodoItem,
)

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])

# Fields a caller may patch on the DayRecord row itself
PATCHABLE_FIELDS = frozenset({"wake_time", "user_timezone"})

# Completion rows that carry a slot assignment
AssignedCompletion = ChecklistItemCompletion | TimeBlockCompletion


@dataclass(frozen=True)
class DaySeed:
    """Initial contents of a lazily created DayRecord."""

    time_block_ids: list[str] = field(default_factory=list)
    user_timezone: str | None = None
    wake_time: str | None = None


def _store_operation(message: str) -> Callable[[F], F]:
    """Roll back, log and wrap SQLAlchemy errors as StoreError(message)."""

    def decorator(func_: F) -> F:
        @wraps(func_)
        async def wrapper(self: DayRecordStore, *args: Any, **kwargs: Any) -> Any:
            try:
                return await func_(self, *args, **kwargs)
            except SQLAlchemyError as exc:
                await self.session.rollback()
                logger.exception("%s (%s)", message, func_.__name__)
                raise StoreError(message) from exc

        return wrapper  # type: ignore[return-value]

    return decorator


class DayRecordStore:
    """
    Store for DayRecords keyed by ``(user_id, date)``.

    Field-scoped mutations join the session transaction and are committed
    through ``commit()``; ``create_day_record`` and ``upsert_day_record``
    commit themselves. Read methods never write.

    Args:
        session: Async SQLAlchemy session (one per request)
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # =========================================================================
    # Records
    # =========================================================================

    @_store_operation("Failed to load day record")
    async def find_day_record(self, user_id: int, day: date) -> DayRecord | None:
        stmt = select(DayRecord).where(DayRecord.user_id == user_id, DayRecord.date == day)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    @_store_operation("Failed to load day record")
    async def load_day(self, user_id: int, day: date) -> DayRecord | None:
        """Load a DayRecord together with all of its completion rows."""
        stmt = (
            select(DayRecord)
            .where(DayRecord.user_id == user_id, DayRecord.date == day)
            .options(
                selectinload(DayRecord.time_block_completions),
                selectinload(DayRecord.block_notes),
                selectinload(DayRecord.checklist_completions),
                selectinload(DayRecord.item_completions),
                selectinload(DayRecord.todo_items),
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def _insert_day_record(self, user_id: int, day: date, seed: DaySeed) -> DayRecord | None:
        record = DayRecord(
            user_id=user_id,
            date=day,
            time_block_ids=list(seed.time_block_ids),
            user_timezone=seed.user_timezone,
            wake_time=seed.wake_time,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(record)
        except IntegrityError:
            logger.info(
                "Day record for user_hash=%s on %s created concurrently, reusing it",
                hash_uid(user_id),
                day.isoformat(),
            )
            return None
        logger.info("Created day record for user_hash=%s on %s", hash_uid(user_id), day.isoformat())
        return record

    @_store_operation("Failed to update day record")
    async def create_day_record(self, user_id: int, day: date, seed: DaySeed) -> DayRecord:
        """
        Create the DayRecord for ``(user_id, date)``.

        If another request created it first, the existing record is returned.
        """
        record = await self._insert_day_record(user_id, day, seed)
        if record is None:
            record = await self._require_existing(user_id, day)
        await self.session.commit()
        return record

    @_store_operation("Failed to update day record")
    async def get_or_create(self, user_id: int, day: date, seed: DaySeed) -> DayRecord:
        """Load the DayRecord, creating it with ``seed`` on first write (no commit)."""
        stmt = select(DayRecord).where(DayRecord.user_id == user_id, DayRecord.date == day)
        result = await self.session.execute(stmt)
        record = result.scalar_one_or_none()
        if record is not None:
            return record
        created = await self._insert_day_record(user_id, day, seed)
        return created if created is not None else await self._require_existing(user_id, day)

    async def _require_existing(self, user_id: int, day: date) -> DayRecord:
        stmt = select(DayRecord).where(DayRecord.user_id == user_id, DayRecord.date == day)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    @_store_operation("Failed to update day record")
    async def upsert_day_record(
        self,
        user_id: int,
        day: date,
        patch: dict[str, Any],
        seed: DaySeed | None = None,
    ) -> DayRecord:
        """
        Apply ``patch`` to the DayRecord row, creating the record if needed.

        Only ``wake_time`` and ``user_timezone`` may be patched; completions
        have dedicated field-scoped operations.
        """
        unknown = set(patch) - PATCHABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unpatchable day record fields: {sorted(unknown)}")

        record = await self.get_or_create(user_id, day, seed or DaySeed())
        if patch:
            await self.session.execute(
                update(DayRecord).where(DayRecord.id == record.id).values(**patch)
            )
        await self.session.commit()
        await self.session.refresh(record)
        return record

    @_store_operation("Failed to update day record")
    async def commit(self) -> None:
        await self.session.commit()

    # =========================================================================
    # Checklist completions
    # =========================================================================

    @_store_operation("Failed to update day record")
    async def add_item_completion(
        self,
        day_record_id: int,
        checklist_id: str,
        item_id: str,
        text: str,
        assignment: CompletionRecord,
    ) -> bool:
        """
        Insert an item completion. Returns False when it already existed.

        The existing row (and its timestamp) is left untouched.
        """
        row = ChecklistItemCompletion(
            day_record_id=day_record_id,
            checklist_id=checklist_id,
            item_id=item_id,
            text=text,
            completed_at=assignment.timestamp,
            block_index=assignment.block_index,
            timezone_offset_minutes=assignment.timezone_offset_minutes,
            local_time_used=assignment.local_time_used,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(row)
        except IntegrityError:
            return False
        return True

    @_store_operation("Failed to update day record")
    async def remove_item_completion(self, day_record_id: int, checklist_id: str, item_id: str) -> bool:
        """Delete an item completion. Returns False when it was absent."""
        result = await self.session.execute(
            delete(ChecklistItemCompletion).where(
                ChecklistItemCompletion.day_record_id == day_record_id,
                ChecklistItemCompletion.checklist_id == checklist_id,
                ChecklistItemCompletion.item_id == item_id,
            )
        )
        return bool(result.rowcount)

    @_store_operation("Failed to update day record")
    async def mark_checklist_completed(
        self, day_record_id: int, checklist_id: str, completed_at: datetime
    ) -> None:
        """Set the checklist-level ``completed_at``, creating the row if needed."""
        stmt = (
            update(ChecklistCompletion)
            .where(
                ChecklistCompletion.day_record_id == day_record_id,
                ChecklistCompletion.checklist_id == checklist_id,
            )
            .values(completed_at=completed_at)
        )
        result = await self.session.execute(stmt)
        if result.rowcount:
            return
        row = ChecklistCompletion(
            day_record_id=day_record_id,
            checklist_id=checklist_id,
            completed_at=completed_at,
            notes=None,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(row)
        except IntegrityError:
            # Created concurrently; apply the timestamp to that row
            await self.session.execute(stmt)

    @_store_operation("Failed to update day record")
    async def refresh_checklist_completed_at(self, day_record_id: int, checklist_id: str) -> None:
        """Reset the checklist-level timestamp to its latest remaining item completion."""
        latest = (
            select(func.max(ChecklistItemCompletion.completed_at))
            .where(
                ChecklistItemCompletion.day_record_id == day_record_id,
                ChecklistItemCompletion.checklist_id == checklist_id,
            )
            .scalar_subquery()
        )
        await self.session.execute(
            update(ChecklistCompletion)
            .where(
                ChecklistCompletion.day_record_id == day_record_id,
                ChecklistCompletion.checklist_id == checklist_id,
            )
            .values(completed_at=latest)
        )

    @_store_operation("Failed to update day record")
    async def set_checklist_notes(self, day_record_id: int, checklist_id: str, notes: str) -> bool:
        """Overwrite checklist notes. Returns False when no checklist completion exists."""
        result = await self.session.execute(
            update(ChecklistCompletion)
            .where(
                ChecklistCompletion.day_record_id == day_record_id,
                ChecklistCompletion.checklist_id == checklist_id,
            )
            .values(notes=notes)
        )
        return bool(result.rowcount)

    # =========================================================================
    # Slot assignment backfill
    # =========================================================================

    @_store_operation("Failed to load day record")
    async def completions_missing_block(self, day_record_id: int) -> list[AssignedCompletion]:
        """Item and time-block completions of a day that have no slot yet."""
        missing: list[AssignedCompletion] = []
        for model in (ChecklistItemCompletion, TimeBlockCompletion):
            result = await self.session.execute(
                select(model).where(
                    model.day_record_id == day_record_id,
                    model.block_index.is_(None),
                )
            )
            missing.extend(result.scalars().all())
        return missing

    @_store_operation("Failed to update day record")
    async def set_completion_block(
        self,
        completion: AssignedCompletion,
        assignment: CompletionRecord,
    ) -> bool:
        """Fill in the slot assignment of a completion that has none yet."""
        model = type(completion)
        result = await self.session.execute(
            update(model)
            .where(model.id == completion.id, model.block_index.is_(None))
            .values(
                block_index=assignment.block_index,
                timezone_offset_minutes=assignment.timezone_offset_minutes,
                local_time_used=assignment.local_time_used,
            )
        )
        return bool(result.rowcount)

    # =========================================================================
    # Time blocks
    # =========================================================================

    @_store_operation("Failed to update day record")
    async def toggle_block(self, day_record_id: int, block_id: str, assignment: CompletionRecord) -> bool:
        """
        Flip a block's completion. Returns the new state (True = complete).

        A new completion records ``assignment``: its timestamp and the slot
        the toggle instant falls in.
        """
        result = await self.session.execute(
            delete(TimeBlockCompletion).where(
                TimeBlockCompletion.day_record_id == day_record_id,
                TimeBlockCompletion.block_id == block_id,
            )
        )
        if result.rowcount:
            return False

        row = TimeBlockCompletion(
            day_record_id=day_record_id,
            block_id=block_id,
            completed_at=assignment.timestamp,
            block_index=assignment.block_index,
            timezone_offset_minutes=assignment.timezone_offset_minutes,
            local_time_used=assignment.local_time_used,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(row)
        except IntegrityError:
            # A concurrent toggle completed it already
            logger.debug("Time block %s completed concurrently", block_id)
        return True

    @_store_operation("Failed to update day record")
    async def add_block_note(self, day_record_id: int, block_id: str, text: str) -> BlockNote:
        note = BlockNote(day_record_id=day_record_id, block_id=block_id, text=text)
        self.session.add(note)
        await self.session.flush()
        return note

    @_store_operation("Failed to update day record")
    async def delete_block_note(self, day_record_id: int, block_id: str, note_id: int) -> bool:
        """Delete one note of a block. Returns False when no such note exists."""
        result = await self.session.execute(
            delete(BlockNote).where(
                BlockNote.id == note_id,
                BlockNote.day_record_id == day_record_id,
                BlockNote.block_id == block_id,
            )
        )
        return bool(result.rowcount)

    # =========================================================================
    # To-do items
    # =========================================================================

    @_store_operation("Failed to load day record")
    async def todo_ids(self, day_record_id: int) -> set[str]:
        stmt = select(TodoItem.item_id).where(TodoItem.day_record_id == day_record_id)
        result = await self.session.execute(stmt)
        return set(result.scalars().all())

    @_store_operation("Failed to update day record")
    async def add_todo(self, day_record_id: int, item_id: str, text: str) -> TodoItem | None:
        """Insert a to-do item. Returns None when ``item_id`` is already taken."""
        row = TodoItem(
            day_record_id=day_record_id,
            item_id=item_id,
            text=text,
            completed=False,
            completed_at=None,
            due_date=None,
        )
        try:
            async with self.session.begin_nested():
                self.session.add(row)
        except IntegrityError:
            return None
        return row

    @_store_operation("Failed to update day record")
    async def set_todo_completed(
        self,
        day_record_id: int,
        item_id: str,
        completed: bool,
        completed_at: datetime | None,
    ) -> bool:
        """Set a to-do's completion state. Returns False when the item does not exist."""
        result = await self.session.execute(
            update(TodoItem)
            .where(TodoItem.day_record_id == day_record_id, TodoItem.item_id == item_id)
            .values(completed=completed, completed_at=completed_at)
        )
        return bool(result.rowcount)

    @_store_operation("Failed to load day record")
    async def find_todo(self, day_record_id: int, item_id: str) -> TodoItem | None:
        stmt = select(TodoItem).where(
            TodoItem.day_record_id == day_record_id, TodoItem.item_id == item_id
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()


__all__ = [
    "AssignedCompletion",
    "DaySeed",
    "DayRecordStore",
    "PATCHABLE_FIELDS",
]
