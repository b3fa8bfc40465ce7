"""
Day Hydration for AMP Tracker.

Builds the read model for one user and one day: the role's active template,
adjusted by the user's time-block overrides, merged with the user's
DayRecord. When no DayRecord exists yet the view shows every template
entity as not completed. Hidden blocks are left out of the view and of the
score.

Hydration never writes. If the template or the day record cannot be read,
a conservative view built from the built-in template with no completions
is returned and flagged ``degraded=True`` instead of failing the page.

Usage:
    hydrator = DayHydrator(template_store, day_store, override_store)
    view = await hydrator.hydrate_day(ctx, "2025-09-17")
    view.to_dict()
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from src.core.templates import TemplateSetData, default_template
from src.core.timeblocks import as_utc
from src.core.user_context import UserContext
from src.lib.dates import parse_day
from src.lib.exceptions import ConfigurationError, StoreError
from src.lib.security import hash_uid
from src.models.day_record import BlockNote, DayRecord, TodoItem
from src.services.block_overrides import BlockOverride, BlockOverrideStore
from src.services.day_store import DayRecordStore
from src.services.template_store import TemplateStore

logger = logging.getLogger(__name__)


def _iso(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value is not None else None


# =============================================================================
# View model
# =============================================================================


@dataclass(frozen=True)
class BlockNoteView:
    note_id: int
    text: str

    @classmethod
    def from_row(cls, row: BlockNote) -> BlockNoteView:
        return cls(note_id=row.id, text=row.text)

    def to_dict(self) -> dict[str, Any]:
        return {"note_id": self.note_id, "text": self.text}


@dataclass(frozen=True)
class TimeBlockView:
    block_id: str
    time: str
    label: str
    order: int
    complete: bool
    completed_at: datetime | None = None
    block_index: int | None = None
    notes: tuple[BlockNoteView, ...] = ()
    is_custom: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "block_id": self.block_id,
            "time": self.time,
            "label": self.label,
            "order": self.order,
            "complete": self.complete,
            "completed_at": _iso(self.completed_at),
            "block_index": self.block_index,
            "notes": [note.to_dict() for note in self.notes],
            "is_custom": self.is_custom,
        }


@dataclass(frozen=True)
class ChecklistItemView:
    item_id: str
    text: str
    order: int
    completed: bool
    completed_at: datetime | None = None
    block_index: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "text": self.text,
            "order": self.order,
            "completed": self.completed,
            "completed_at": _iso(self.completed_at),
            "block_index": self.block_index,
        }


@dataclass(frozen=True)
class ChecklistView:
    checklist_id: str
    title: str
    order: int
    items: tuple[ChecklistItemView, ...]
    completed_at: datetime | None = None
    notes: str | None = None

    @property
    def completed_count(self) -> int:
        return sum(1 for item in self.items if item.completed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "checklist_id": self.checklist_id,
            "title": self.title,
            "order": self.order,
            "items": [item.to_dict() for item in self.items],
            "completed_at": _iso(self.completed_at),
            "notes": self.notes,
            "completed_count": self.completed_count,
        }


@dataclass(frozen=True)
class TodoItemView:
    item_id: str
    text: str
    completed: bool
    completed_at: datetime | None = None
    due_date: date | None = None

    @classmethod
    def from_row(cls, row: TodoItem) -> TodoItemView:
        return cls(
            item_id=row.item_id,
            text=row.text,
            completed=bool(row.completed),
            completed_at=as_utc(row.completed_at) if row.completed_at else None,
            due_date=row.due_date,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item_id,
            "text": self.text,
            "completed": self.completed,
            "completed_at": _iso(self.completed_at),
            "due_date": self.due_date.isoformat() if self.due_date else None,
        }


@dataclass(frozen=True)
class MergedDayView:
    """
    Hydrated day: template entities annotated with the user's completions.

    Attributes:
        date: Calendar date (YYYY-MM-DD)
        role: Role whose template was used
        template_version: Version of that template
        wake_time: Wake time recorded for the day, if any
        time_blocks: Visible blocks in template order, overrides applied
        checklists: Checklists (and items) in template order
        todos: User-authored to-dos in creation order
        degraded: True when built from the built-in template after a failure
    """

    date: str
    role: str
    template_version: str
    wake_time: str | None
    time_blocks: tuple[TimeBlockView, ...]
    checklists: tuple[ChecklistView, ...]
    todos: tuple[TodoItemView, ...] = ()
    degraded: bool = False

    @property
    def score(self) -> int:
        """Percentage of time blocks completed, rounded half up."""
        total = len(self.time_blocks)
        if total == 0:
            return 0
        done = sum(1 for block in self.time_blocks if block.complete)
        return int(done * 100 / total + 0.5)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "role": self.role,
            "template_version": self.template_version,
            "wake_time": self.wake_time,
            "time_blocks": [block.to_dict() for block in self.time_blocks],
            "checklists": [checklist.to_dict() for checklist in self.checklists],
            "todos": [todo.to_dict() for todo in self.todos],
            "score": self.score,
            "degraded": self.degraded,
        }


# =============================================================================
# Merge
# =============================================================================


@dataclass
class _Completions:
    blocks: dict[str, tuple[datetime, int | None]] = field(default_factory=dict)
    notes: dict[str, list[BlockNoteView]] = field(default_factory=lambda: defaultdict(list))
    items: dict[tuple[str, str], tuple[datetime, int | None]] = field(default_factory=dict)
    checklists: dict[str, tuple[datetime | None, str | None]] = field(default_factory=dict)
    todos: list[TodoItemView] = field(default_factory=list)
    wake_time: str | None = None

    @classmethod
    def from_record(cls, record: DayRecord | None) -> _Completions:
        completions = cls()
        if record is None:
            return completions
        completions.wake_time = record.wake_time
        for block in record.time_block_completions:
            completions.blocks[block.block_id] = (as_utc(block.completed_at), block.block_index)
        for note in sorted(record.block_notes, key=lambda n: (n.created_at, n.id)):
            completions.notes[note.block_id].append(BlockNoteView.from_row(note))
        for item in record.item_completions:
            completions.items[(item.checklist_id, item.item_id)] = (
                as_utc(item.completed_at),
                item.block_index,
            )
        for checklist in record.checklist_completions:
            completions.checklists[checklist.checklist_id] = (
                as_utc(checklist.completed_at) if checklist.completed_at else None,
                checklist.notes,
            )
        completions.todos = [
            TodoItemView.from_row(row)
            for row in sorted(record.todo_items, key=lambda t: (t.created_at, t.id))
        ]
        return completions


def merge_day(
    day: str,
    template: TemplateSetData,
    record: DayRecord | None,
    degraded: bool = False,
    overrides: Mapping[str, BlockOverride] | None = None,
) -> MergedDayView:
    """Merge a validated template and the user's overrides with a (possibly absent) DayRecord."""
    completions = _Completions.from_record(record)
    overrides = overrides or {}

    time_blocks = []
    for block in template.ordered_time_blocks():
        override = overrides.get(block.block_id)
        if override is not None and override.is_hidden:
            continue
        completion = completions.blocks.get(block.block_id)
        time_blocks.append(
            TimeBlockView(
                block_id=block.block_id,
                time=(override.time if override else None) or block.time,
                label=(override.label if override else None) or block.label,
                order=block.order,
                complete=completion is not None,
                completed_at=completion[0] if completion else None,
                block_index=completion[1] if completion else None,
                notes=tuple(completions.notes.get(block.block_id, ())),
                is_custom=override.is_custom if override else False,
            )
        )

    checklists = []
    for checklist in template.ordered_checklists():
        items = []
        for item in checklist.ordered_items():
            completion = completions.items.get((checklist.checklist_id, item.item_id))
            items.append(
                ChecklistItemView(
                    item_id=item.item_id,
                    text=item.text,
                    order=item.order,
                    completed=completion is not None,
                    completed_at=completion[0] if completion else None,
                    block_index=completion[1] if completion else None,
                )
            )
        completed_at, notes = completions.checklists.get(checklist.checklist_id, (None, None))
        checklists.append(
            ChecklistView(
                checklist_id=checklist.checklist_id,
                title=checklist.title,
                order=checklist.order,
                items=tuple(items),
                completed_at=completed_at,
                notes=notes,
            )
        )

    return MergedDayView(
        date=day,
        role=template.role.value,
        template_version=template.version,
        wake_time=completions.wake_time,
        time_blocks=tuple(time_blocks),
        checklists=tuple(checklists),
        todos=tuple(completions.todos),
        degraded=degraded,
    )


class DayHydrator:
    """
    Read-side merge of templates, overrides and day records.

    Args:
        template_store: Source of the role's active template
        day_store: Source of the user's DayRecord
        override_store: Source of the user's time-block overrides (none
            applied when omitted)
    """

    def __init__(
        self,
        template_store: TemplateStore,
        day_store: DayRecordStore,
        override_store: BlockOverrideStore | None = None,
    ) -> None:
        self.template_store = template_store
        self.day_store = day_store
        self.override_store = override_store

    async def hydrate_day(self, ctx: UserContext, day: str) -> MergedDayView:
        """
        Build the merged view for ``ctx.user_id`` on ``day``.

        Raises:
            ValidationError: If ``day`` is not a valid YYYY-MM-DD date
        """
        day_date = parse_day(day)
        try:
            template = await self.template_store.get_template(ctx.role)
            overrides = (
                await self.override_store.list_overrides(ctx.user_id)
                if self.override_store is not None
                else {}
            )
            record = await self.day_store.load_day(ctx.user_id, day_date)
        except (ConfigurationError, StoreError) as exc:
            logger.warning(
                "Serving degraded day view for user_hash=%s on %s: %s",
                hash_uid(ctx.user_id),
                day,
                exc,
            )
            return merge_day(day, default_template(ctx.role), None, degraded=True)
        return merge_day(day, template, record, overrides=overrides)


__all__ = [
    "BlockNoteView",
    "TimeBlockView",
    "ChecklistItemView",
    "ChecklistView",
    "TodoItemView",
    "MergedDayView",
    "merge_day",
    "DayHydrator",
]
