"""
Completion Recorder for AMP Tracker.

Records and retracts completions on a user's DayRecord:

- complete_checklist_item / uncomplete_checklist_item
- toggle_time_block, add_block_note, delete_block_note
- add_todo_item, toggle_todo_item
- add_checklist_notes
- update_wake_time
- backfill_completion_blocks

Every operation validates its input before touching the store, creates the
DayRecord on first write where the operation allows it, commits one unit
of work and then bumps the day-view cache generation of ``(user, date)``.
Completion timestamps always come from the injected Clock.

Usage:
    recorder = CompletionRecorder(day_store, clock=SystemClock())
    await recorder.complete_checklist_item(
        ctx, "master-checklist", "mc-morning-001", "Morning routine", "2025-09-17"
    )
"""

from __future__ import annotations

import logging

from src.config.limits import (
    MAX_CHECKLIST_NOTES_LENGTH,
    MAX_ITEM_TEXT_LENGTH,
    MAX_NOTE_LENGTH,
    MAX_TODO_LENGTH,
)
from src.core.clock import Clock, SystemClock, epoch_ms
from src.core.templates import default_time_blocks
from src.core.timeblocks import WakeSettings, as_utc, assign_time_block, resolve_zone
from src.core.user_context import UserContext
from src.lib.dates import normalize_wake_time, parse_day
from src.lib.exceptions import NotFoundError, StoreError, ValidationError
from src.lib.ids import IdAllocator
from src.lib.security import InputSanitizer, hash_uid
from src.services.day_cache import invalidate_day_view
from src.services.day_store import DayRecordStore, DaySeed
from src.services.hydration import BlockNoteView, TodoItemView
from src.services.redis_service import RedisService

logger = logging.getLogger(__name__)

# Inserts retried when a freshly allocated to-do id loses a race
_TODO_INSERT_ATTEMPTS = 2


class CompletionRecorder:
    """
    Write side of the day record.

    Args:
        day_store: Day-record store bound to the request's session
        clock: Source of completion timestamps
        id_allocator: Allocator for to-do ids (defaults to one driven by ``clock``)
        redis_service: Cache backend for day-view invalidation (singleton if None)
    """

    def __init__(
        self,
        day_store: DayRecordStore,
        clock: Clock | None = None,
        id_allocator: IdAllocator | None = None,
        redis_service: RedisService | None = None,
    ) -> None:
        self.day_store = day_store
        self.clock = clock or SystemClock()
        self.id_allocator = id_allocator or IdAllocator(lambda: epoch_ms(self.clock))
        self.redis_service = redis_service

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _seed(ctx: UserContext) -> DaySeed:
        """Seed for a lazily created record: the 18 default blocks."""
        return DaySeed(
            time_block_ids=[block.block_id for block in default_time_blocks()],
            user_timezone=ctx.timezone,
        )

    async def _invalidate(self, ctx: UserContext, day: str) -> None:
        await invalidate_day_view(ctx.user_id, day, redis_service=self.redis_service)

    @staticmethod
    def _log_write(operation: str, ctx: UserContext, day: str) -> None:
        if ctx.is_delegated:
            logger.info(
                "%s on %s for user_hash=%s by admin_hash=%s",
                operation,
                day,
                hash_uid(ctx.user_id),
                hash_uid(ctx.acting_user_id or 0),
            )
        else:
            logger.debug("%s on %s for user_hash=%s", operation, day, hash_uid(ctx.user_id))

    # =========================================================================
    # Checklist items
    # =========================================================================

    async def complete_checklist_item(
        self,
        ctx: UserContext,
        checklist_id: str,
        item_id: str,
        item_text: str,
        day: str,
    ) -> bool:
        """
        Mark a checklist item completed.

        The completion is assigned to a time block in the user's timezone,
        honouring the wake time recorded for ``day``. Completing an item
        that is already completed changes nothing.

        Returns:
            True if the completion was recorded, False if it already existed

        Raises:
            ValidationError: Bad identifiers or date
            ConfigurationError: The user has no valid timezone
            StoreError: The store failed
        """
        InputSanitizer.require_identifier(checklist_id, "checklist_id")
        InputSanitizer.require_identifier(item_id, "item_id")
        day_date = parse_day(day)
        text = InputSanitizer.clean_text(item_text, MAX_ITEM_TEXT_LENGTH)
        timezone = ctx.require_timezone()
        resolve_zone(timezone)

        record = await self.day_store.get_or_create(ctx.user_id, day_date, self._seed(ctx))
        now = self.clock.now()
        assignment = assign_time_block(now, timezone, WakeSettings(date=day, wake_time=record.wake_time))

        inserted = await self.day_store.add_item_completion(record.id, checklist_id, item_id, text, assignment)
        if inserted:
            await self.day_store.mark_checklist_completed(record.id, checklist_id, now)
        await self.day_store.commit()

        self._log_write("complete_checklist_item", ctx, day)
        await self._invalidate(ctx, day)
        return inserted

    async def uncomplete_checklist_item(
        self,
        ctx: UserContext,
        checklist_id: str,
        item_id: str,
        day: str,
    ) -> bool:
        """
        Remove a checklist item completion.

        Returns:
            True if a completion was removed; False if it was absent or the
            day has no record (nothing is created in that case)
        """
        InputSanitizer.require_identifier(checklist_id, "checklist_id")
        InputSanitizer.require_identifier(item_id, "item_id")
        day_date = parse_day(day)

        record = await self.day_store.find_day_record(ctx.user_id, day_date)
        if record is None:
            return False

        removed = await self.day_store.remove_item_completion(record.id, checklist_id, item_id)
        if removed:
            await self.day_store.refresh_checklist_completed_at(record.id, checklist_id)
        await self.day_store.commit()

        self._log_write("uncomplete_checklist_item", ctx, day)
        await self._invalidate(ctx, day)
        return removed

    async def add_checklist_notes(
        self,
        ctx: UserContext,
        checklist_id: str,
        notes: str,
        day: str,
    ) -> None:
        """
        Overwrite the notes of a checklist for ``day``.

        Raises:
            NotFoundError: If the day has no record or the checklist has no
                completion entry yet
        """
        InputSanitizer.require_identifier(checklist_id, "checklist_id")
        day_date = parse_day(day)
        cleaned = InputSanitizer.clean_text(notes, MAX_CHECKLIST_NOTES_LENGTH)

        record = await self.day_store.find_day_record(ctx.user_id, day_date)
        if record is None:
            raise NotFoundError(f"No day record for {day}")
        if not await self.day_store.set_checklist_notes(record.id, checklist_id, cleaned):
            raise NotFoundError(f"No completions for checklist {checklist_id} on {day}")
        await self.day_store.commit()

        self._log_write("add_checklist_notes", ctx, day)
        await self._invalidate(ctx, day)

    # =========================================================================
    # Time blocks
    # =========================================================================

    async def toggle_time_block(self, ctx: UserContext, day: str, block_id: str) -> bool:
        """
        Flip a time block's completion, creating the day record if needed.

        A new completion records the slot its instant falls in, computed in
        the user's timezone with the day's wake time.

        Returns:
            The new state (True = complete)

        Raises:
            ValidationError: Bad block id or date
            ConfigurationError: The user has no valid timezone
        """
        InputSanitizer.require_identifier(block_id, "block_id")
        day_date = parse_day(day)
        timezone = ctx.require_timezone()
        resolve_zone(timezone)

        record = await self.day_store.get_or_create(ctx.user_id, day_date, self._seed(ctx))
        assignment = assign_time_block(
            self.clock.now(), timezone, WakeSettings(date=day, wake_time=record.wake_time)
        )
        complete = await self.day_store.toggle_block(record.id, block_id, assignment)
        await self.day_store.commit()

        self._log_write("toggle_time_block", ctx, day)
        await self._invalidate(ctx, day)
        return complete

    async def add_block_note(self, ctx: UserContext, day: str, block_id: str, note: str) -> BlockNoteView | None:
        """
        Append a note to a time block.

        Notes are trimmed and capped; empty notes are dropped without
        touching the store.

        Returns:
            The stored note, or None if it was empty
        """
        InputSanitizer.require_identifier(block_id, "block_id")
        day_date = parse_day(day)
        cleaned = InputSanitizer.clean_text(note, MAX_NOTE_LENGTH)
        if not cleaned:
            return None

        record = await self.day_store.get_or_create(ctx.user_id, day_date, self._seed(ctx))
        row = await self.day_store.add_block_note(record.id, block_id, cleaned)
        await self.day_store.commit()

        self._log_write("add_block_note", ctx, day)
        await self._invalidate(ctx, day)
        return BlockNoteView.from_row(row)

    async def delete_block_note(self, ctx: UserContext, day: str, block_id: str, note_id: int) -> None:
        """
        Delete one note of a time block.

        Raises:
            NotFoundError: If the day, or the note on that block, does not exist
        """
        InputSanitizer.require_identifier(block_id, "block_id")
        day_date = parse_day(day)

        record = await self.day_store.find_day_record(ctx.user_id, day_date)
        if record is None or not await self.day_store.delete_block_note(record.id, block_id, note_id):
            raise NotFoundError(f"Note {note_id} not found on block {block_id} for {day}")
        await self.day_store.commit()

        self._log_write("delete_block_note", ctx, day)
        await self._invalidate(ctx, day)

    # =========================================================================
    # To-do items
    # =========================================================================

    async def add_todo_item(self, ctx: UserContext, day: str, text: str) -> TodoItemView:
        """
        Append a to-do item to the day.

        Raises:
            ValidationError: If the text is empty after trimming
        """
        day_date = parse_day(day)
        cleaned = InputSanitizer.clean_text(text, MAX_TODO_LENGTH)
        if not cleaned:
            raise ValidationError("To-do text must not be empty")

        record = await self.day_store.get_or_create(ctx.user_id, day_date, self._seed(ctx))
        row = None
        for _ in range(_TODO_INSERT_ATTEMPTS):
            item_id = self.id_allocator.todo(await self.day_store.todo_ids(record.id))
            row = await self.day_store.add_todo(record.id, item_id, cleaned)
            if row is not None:
                break
        if row is None:
            raise StoreError("Failed to update day record")
        await self.day_store.commit()

        self._log_write("add_todo_item", ctx, day)
        await self._invalidate(ctx, day)
        return TodoItemView.from_row(row)

    async def toggle_todo_item(self, ctx: UserContext, day: str, item_id: str) -> bool:
        """
        Flip a to-do's completed flag.

        Returns:
            The new state (True = completed)

        Raises:
            NotFoundError: If the day or the to-do does not exist
        """
        InputSanitizer.require_identifier(item_id, "item_id")
        day_date = parse_day(day)

        record = await self.day_store.find_day_record(ctx.user_id, day_date)
        todo = await self.day_store.find_todo(record.id, item_id) if record is not None else None
        if record is None or todo is None:
            raise NotFoundError(f"To-do {item_id} not found on {day}")

        completed = not todo.completed
        await self.day_store.set_todo_completed(
            record.id, item_id, completed, self.clock.now() if completed else None
        )
        await self.day_store.commit()

        self._log_write("toggle_todo_item", ctx, day)
        await self._invalidate(ctx, day)
        return completed

    # =========================================================================
    # Wake time and backfill
    # =========================================================================

    async def update_wake_time(self, ctx: UserContext, day: str, wake_time: str) -> str:
        """
        Record the wake time for ``day`` (``HH:MM``, 24-hour).

        Returns:
            The normalized wake time
        """
        day_date = parse_day(day)
        normalized = normalize_wake_time(wake_time)

        await self.day_store.upsert_day_record(
            ctx.user_id, day_date, {"wake_time": normalized}, seed=self._seed(ctx)
        )

        self._log_write("update_wake_time", ctx, day)
        await self._invalidate(ctx, day)
        return normalized

    async def backfill_completion_blocks(self, ctx: UserContext, day: str) -> int:
        """
        Assign time blocks to stored item and time-block completions that
        have none.

        Uses each completion's recorded timestamp and the day's wake time, so
        running it again changes nothing.

        Returns:
            Number of completions updated
        """
        day_date = parse_day(day)
        record = await self.day_store.find_day_record(ctx.user_id, day_date)
        if record is None:
            return 0
        timezone = record.user_timezone or ctx.require_timezone()
        wake = WakeSettings(date=day, wake_time=record.wake_time)

        updated = 0
        for completion in await self.day_store.completions_missing_block(record.id):
            assignment = assign_time_block(as_utc(completion.completed_at), timezone, wake)
            if await self.day_store.set_completion_block(completion, assignment):
                updated += 1
        await self.day_store.commit()

        if updated:
            logger.info(
                "Backfilled %d completion blocks on %s for user_hash=%s",
                updated,
                day,
                hash_uid(ctx.user_id),
            )
            await self._invalidate(ctx, day)
        return updated


__all__ = ["CompletionRecorder"]
