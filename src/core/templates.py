"""
Template and checklist definitions for AMP Tracker.

A TemplateSet describes what a user's day looks like for one role: the time
blocks shown on the day page and the checklists (with their items). Order is
stored twice: as an ``*_order`` id array (authoritative) and as a numeric
``order`` on every entity. ``validate_template`` checks that both agree and
that every id in an order array resolves to exactly one entity.

Usage:
    from src.core.templates import default_template, validate_template

    template = default_template(Role.PUBLIC)
    validate_template(template)
    for checklist in template.ordered_checklists():
        ...
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from typing import Any

from src.core.timeblocks import generate_time_blocks
from src.core.user_context import Role
from src.lib.exceptions import ConfigurationError
from src.lib.ids import habit_break_id, master_checklist_id

SEMVER_PATTERN = re.compile(r"^\d+\.\d+\.\d+$")

MASTER_CHECKLIST_ID = "master-checklist"
HABIT_BREAK_CHECKLIST_ID = "habit-break-checklist"


# =============================================================================
# Definitions
# =============================================================================


@dataclass(frozen=True)
class TimeBlockDefinition:
    """A time block shown on the day page."""

    block_id: str
    time: str
    label: str
    order: int

    def to_dict(self) -> dict[str, Any]:
        return {"block_id": self.block_id, "time": self.time, "label": self.label, "order": self.order}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TimeBlockDefinition:
        return cls(
            block_id=data["block_id"],
            time=data.get("time", ""),
            label=data.get("label", ""),
            order=int(data["order"]),
        )


@dataclass(frozen=True)
class ChecklistItemDefinition:
    """A single checkable item within a checklist."""

    item_id: str
    text: str
    order: int

    def to_dict(self) -> dict[str, Any]:
        return {"item_id": self.item_id, "text": self.text, "order": self.order}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChecklistItemDefinition:
        return cls(item_id=data["item_id"], text=data.get("text", ""), order=int(data["order"]))


@dataclass(frozen=True)
class ChecklistDefinition:
    """A titled checklist with ordered items."""

    checklist_id: str
    title: str
    items: tuple[ChecklistItemDefinition, ...]
    items_order: tuple[str, ...]
    order: int

    def ordered_items(self) -> list[ChecklistItemDefinition]:
        """Items in ``items_order`` sequence."""
        by_id = {item.item_id: item for item in self.items}
        return [by_id[item_id] for item_id in self.items_order]

    def find_item(self, item_id: str) -> ChecklistItemDefinition | None:
        for item in self.items:
            if item.item_id == item_id:
                return item
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "checklist_id": self.checklist_id,
            "title": self.title,
            "items": [item.to_dict() for item in self.items],
            "items_order": list(self.items_order),
            "order": self.order,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChecklistDefinition:
        return cls(
            checklist_id=data["checklist_id"],
            title=data.get("title", ""),
            items=tuple(ChecklistItemDefinition.from_dict(item) for item in data.get("items", [])),
            items_order=tuple(data.get("items_order", [])),
            order=int(data["order"]),
        )


@dataclass(frozen=True)
class TemplateSetData:
    """
    Versioned, role-scoped day template.

    Attributes:
        role: Audience of the template
        version: Semantic version ``x.y.z``
        name: Human-readable name
        time_blocks: Block definitions (empty means "use the 18 canonical slots")
        time_blocks_order: Authoritative block order
        checklists: Checklist definitions
        checklists_order: Authoritative checklist order
        is_active: Whether this is the role's active version
        template_id: Store identifier (None until persisted)
    """

    role: Role
    version: str
    name: str
    time_blocks: tuple[TimeBlockDefinition, ...] = ()
    time_blocks_order: tuple[str, ...] = ()
    checklists: tuple[ChecklistDefinition, ...] = ()
    checklists_order: tuple[str, ...] = ()
    is_active: bool = False
    template_id: int | None = None

    def ordered_time_blocks(self) -> list[TimeBlockDefinition]:
        by_id = {block.block_id: block for block in self.time_blocks}
        return [by_id[block_id] for block_id in self.time_blocks_order]

    def ordered_checklists(self) -> list[ChecklistDefinition]:
        by_id = {checklist.checklist_id: checklist for checklist in self.checklists}
        return [by_id[checklist_id] for checklist_id in self.checklists_order]

    def find_checklist(self, checklist_id: str) -> ChecklistDefinition | None:
        for checklist in self.checklists:
            if checklist.checklist_id == checklist_id:
                return checklist
        return None

    def with_default_blocks(self) -> TemplateSetData:
        """Copy with the canonical 18 blocks when no blocks are defined."""
        if self.time_blocks:
            return self
        blocks = default_time_blocks()
        return replace(
            self,
            time_blocks=tuple(blocks),
            time_blocks_order=tuple(block.block_id for block in blocks),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "template_id": self.template_id,
            "role": self.role.value,
            "version": self.version,
            "name": self.name,
            "is_active": self.is_active,
            "time_blocks": [block.to_dict() for block in self.time_blocks],
            "time_blocks_order": list(self.time_blocks_order),
            "checklists": [checklist.to_dict() for checklist in self.checklists],
            "checklists_order": list(self.checklists_order),
        }


# =============================================================================
# Validation
# =============================================================================


def _check_order(
    kind: str,
    entity_ids: Sequence[str],
    order_ids: Sequence[str],
    order_values: Sequence[int],
) -> None:
    if len(set(entity_ids)) != len(entity_ids):
        raise ConfigurationError(f"Duplicate {kind} ids")
    if len(set(order_ids)) != len(order_ids):
        raise ConfigurationError(f"Duplicate ids in {kind} order")

    orphans_in_order = set(order_ids) - set(entity_ids)
    if orphans_in_order:
        raise ConfigurationError(
            f"{kind} order references unknown ids: {sorted(orphans_in_order)}"
        )
    missing_from_order = set(entity_ids) - set(order_ids)
    if missing_from_order:
        raise ConfigurationError(
            f"{kind} ids missing from order: {sorted(missing_from_order)}"
        )

    by_numeric = [
        entity_id for _, entity_id in sorted(zip(order_values, entity_ids, strict=True))
    ]
    if len(set(order_values)) != len(order_values) or by_numeric != list(order_ids):
        raise ConfigurationError(f"{kind} order field disagrees with order array")


def validate_template(template: TemplateSetData) -> None:
    """
    Check the structural consistency of a template set.

    Raises:
        ConfigurationError: On a bad version, orphaned or duplicate ids, or
            numeric ``order`` values that disagree with an order array
    """
    if not SEMVER_PATTERN.match(template.version):
        raise ConfigurationError(f"Template version must be x.y.z, got {template.version!r}")

    _check_order(
        "time block",
        [block.block_id for block in template.time_blocks],
        template.time_blocks_order,
        [block.order for block in template.time_blocks],
    )
    _check_order(
        "checklist",
        [checklist.checklist_id for checklist in template.checklists],
        template.checklists_order,
        [checklist.order for checklist in template.checklists],
    )
    for checklist in template.checklists:
        _check_order(
            f"checklist {checklist.checklist_id} item",
            [item.item_id for item in checklist.items],
            checklist.items_order,
            [item.order for item in checklist.items],
        )


# =============================================================================
# Built-in catalogs
# =============================================================================


def default_time_blocks() -> list[TimeBlockDefinition]:
    """The 18 canonical slots as template blocks (order starts at 1)."""
    return [
        TimeBlockDefinition(
            block_id=slot.block_id,
            time=f"{slot.start_hour:02d}:00",
            label=slot.label,
            order=slot.index + 1,
        )
        for slot in generate_time_blocks()
    ]


def build_checklist(
    checklist_id: str,
    title: str,
    order: int,
    items: Iterable[tuple[str, str]],
) -> ChecklistDefinition:
    """Build a checklist from ``(item_id, text)`` pairs in display order."""
    definitions = tuple(
        ChecklistItemDefinition(item_id=item_id, text=text, order=position)
        for position, (item_id, text) in enumerate(items, start=1)
    )
    return ChecklistDefinition(
        checklist_id=checklist_id,
        title=title,
        items=definitions,
        items_order=tuple(item.item_id for item in definitions),
        order=order,
    )


_ADMIN_MASTER_ITEMS = [
    (master_checklist_id("morning", 1), "Wake up at target time"),
    (master_checklist_id("morning", 2), "Morning meditation/prayer"),
    (master_checklist_id("morning", 3), "Review daily goals"),
    (master_checklist_id("work", 1), "Check and respond to priority emails"),
    (master_checklist_id("work", 2), "Complete most important task"),
    (master_checklist_id("work", 3), "Update project status"),
    (master_checklist_id("tech", 1), "Code review and commits"),
    (master_checklist_id("tech", 2), "Learn something new (tech)"),
    (master_checklist_id("house", 1), "Tidy living space"),
    (master_checklist_id("house", 2), "Meal prep/planning"),
    (master_checklist_id("wrapup", 1), "Review day accomplishments"),
    (master_checklist_id("wrapup", 2), "Plan tomorrow priorities"),
]

_ADMIN_HABIT_ITEMS = [
    (habit_break_id("lsd", 1), "Avoided mindless social media"),
    (habit_break_id("lsd", 2), "Limited news consumption"),
    (habit_break_id("financial", 1), "Tracked expenses"),
    (habit_break_id("financial", 2), "No impulse purchases"),
    (habit_break_id("youtube", 1), "Productive YouTube only"),
    (habit_break_id("time", 1), "Used time blocking effectively"),
]

_PUBLIC_MASTER_ITEMS = [
    (master_checklist_id("morning", 1), "Morning routine"),
    (master_checklist_id("work", 1), "Complete important task"),
    (master_checklist_id("house", 1), "Tidy space"),
    (master_checklist_id("wrapup", 1), "Review day"),
]

_PUBLIC_HABIT_ITEMS = [
    (habit_break_id("lsd", 1), "Mindful social media use"),
    (habit_break_id("financial", 1), "Track spending"),
    (habit_break_id("time", 1), "Use time wisely"),
]


def default_template(role: Role) -> TemplateSetData:
    """Built-in template for a role, used for seeding and degraded reads."""
    if role == Role.ADMIN:
        name = "Admin Default Template"
        master_items, habit_items = _ADMIN_MASTER_ITEMS, _ADMIN_HABIT_ITEMS
    else:
        name = "Public Default Template"
        master_items, habit_items = _PUBLIC_MASTER_ITEMS, _PUBLIC_HABIT_ITEMS

    checklists = (
        build_checklist(MASTER_CHECKLIST_ID, "Master Checklist", 1, master_items),
        build_checklist(HABIT_BREAK_CHECKLIST_ID, "Habit Break Checklist", 2, habit_items),
    )
    blocks = default_time_blocks()
    return TemplateSetData(
        role=role,
        version="1.0.0",
        name=name,
        time_blocks=tuple(blocks),
        time_blocks_order=tuple(block.block_id for block in blocks),
        checklists=checklists,
        checklists_order=tuple(checklist.checklist_id for checklist in checklists),
        is_active=True,
    )


__all__ = [
    "SEMVER_PATTERN",
    "MASTER_CHECKLIST_ID",
    "HABIT_BREAK_CHECKLIST_ID",
    "TimeBlockDefinition",
    "ChecklistItemDefinition",
    "ChecklistDefinition",
    "TemplateSetData",
    "validate_template",
    "default_time_blocks",
    "build_checklist",
    "default_template",
]
