"""
Centralized identifier allocation for AMP Tracker.

Two families of identifiers exist:

Template ids (semantic, stable, assigned by admins):
    mc-<morning|work|tech|house|wrapup>-NNN   master checklist items
    hb-<lsd|financial|youtube|time>-NNN       habit-break items
    tb-HHh-NNN                                time blocks

User ids (allocated at creation time):
    todo-<13-digit epoch ms>-<0..9999>-<sequence>
    workout-<13-digit epoch ms>-<0..9999>-<sequence>
    block-<uuid4>

Legacy day records may still carry ``block-<int>`` ids; they are recognized
so that hydration can match them, but new ones are never allocated.
"""

from __future__ import annotations

import logging
import random
import re
import uuid
from collections.abc import Callable, Collection
from enum import StrEnum

from src.config.limits import TODO_ID_MAX_ATTEMPTS
from src.lib.exceptions import ValidationError

logger = logging.getLogger(__name__)


class IdKind(StrEnum):
    """Kinds of identifiers handled by the allocator."""

    TODO = "todo"
    WORKOUT = "workout"
    BLOCK = "block"
    MASTER_CHECKLIST = "master_checklist"
    HABIT_BREAK = "habit_break"
    TIME_BLOCK = "time_block"


MASTER_CHECKLIST_CATEGORIES = ("morning", "work", "tech", "house", "wrapup")
HABIT_BREAK_CATEGORIES = ("lsd", "financial", "youtube", "time")

_UUID = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"

ID_PATTERNS: dict[IdKind, re.Pattern[str]] = {
    IdKind.TODO: re.compile(rf"^todo-(\d{{13}}-\d{{1,4}}-\d+|{_UUID})$"),
    IdKind.WORKOUT: re.compile(rf"^workout-(\d{{13}}-\d{{1,4}}-\d+|{_UUID})$"),
    IdKind.BLOCK: re.compile(rf"^block-{_UUID}$"),
    IdKind.MASTER_CHECKLIST: re.compile(
        rf"^mc-({'|'.join(MASTER_CHECKLIST_CATEGORIES)})-\d{{3}}$"
    ),
    IdKind.HABIT_BREAK: re.compile(rf"^hb-({'|'.join(HABIT_BREAK_CATEGORIES)})-\d{{3}}$"),
    IdKind.TIME_BLOCK: re.compile(r"^tb-\d{2}h-\d{3}$"),
}

_LEGACY_BLOCK = re.compile(r"^block-\d+$")
_KNOWN_PREFIX = re.compile(r"^(mc|hb|tb|todo|workout|block)-")


def validate_id(kind: IdKind, value: str) -> bool:
    """Check whether ``value`` matches the current format for ``kind``."""
    return bool(ID_PATTERNS[kind].match(value))


def is_legacy_block_id(value: str) -> bool:
    """Legacy numeric block ids (``block-3``) predate the uuid format."""
    return bool(_LEGACY_BLOCK.match(value))


def needs_migration(value: str) -> bool:
    """
    True for ids that follow no known format and no known prefix.

    Legacy ``block-<int>`` ids are reported separately by
    ``is_legacy_block_id``.
    """
    if any(pattern.match(value) for pattern in ID_PATTERNS.values()):
        return False
    return not _KNOWN_PREFIX.match(value)


def master_checklist_id(category: str, sequence: int) -> str:
    """Semantic id for a master checklist item; unknown categories map to morning."""
    cat = category if category in MASTER_CHECKLIST_CATEGORIES else "morning"
    return f"mc-{cat}-{sequence:03d}"


def habit_break_id(category: str, sequence: int) -> str:
    """Semantic id for a habit-break item; unknown categories map to lsd."""
    cat = category if category in HABIT_BREAK_CATEGORIES else "lsd"
    return f"hb-{cat}-{sequence:03d}"


def time_block_id(hour: int, sequence: int = 1) -> str:
    return f"tb-{hour:02d}h-{sequence:03d}"


class IdAllocator:
    """
    Allocates user-created identifiers.

    Candidates are checked against the ids already present on the target
    record. After ``max_attempts`` collisions the allocator falls back to a
    uuid4-based id, which is accepted by the same validators.

    Args:
        now_ms: Callable returning the current epoch time in milliseconds
        rng: Random source for the 0..9999 component
        max_attempts: Candidates tried before the uuid fallback
    """

    def __init__(
        self,
        now_ms: Callable[[], int],
        rng: random.Random | None = None,
        max_attempts: int = TODO_ID_MAX_ATTEMPTS,
    ) -> None:
        if max_attempts < 1:
            raise ValidationError("max_attempts must be at least 1")
        self._now_ms = now_ms
        self._rng = rng or random.Random()
        self._max_attempts = max_attempts

    def _candidate(self, prefix: str, sequence: int) -> str:
        return f"{prefix}-{self._now_ms():013d}-{self._rng.randint(0, 9999)}-{sequence}"

    def _allocate(self, prefix: str, existing: Collection[str]) -> str:
        for sequence in range(self._max_attempts):
            candidate = self._candidate(prefix, sequence)
            if candidate not in existing:
                return candidate
        fallback = f"{prefix}-{uuid.uuid4()}"
        logger.warning(
            "Id collision limit reached for %s after %d attempts, using uuid fallback",
            prefix,
            self._max_attempts,
        )
        return fallback

    def todo(self, existing: Collection[str] = ()) -> str:
        return self._allocate("todo", existing)

    def workout(self, existing: Collection[str] = ()) -> str:
        return self._allocate("workout", existing)

    @staticmethod
    def block() -> str:
        return f"block-{uuid.uuid4()}"


__all__ = [
    "IdKind",
    "IdAllocator",
    "ID_PATTERNS",
    "MASTER_CHECKLIST_CATEGORIES",
    "HABIT_BREAK_CATEGORIES",
    "validate_id",
    "is_legacy_block_id",
    "needs_migration",
    "master_checklist_id",
    "habit_break_id",
    "time_block_id",
]
