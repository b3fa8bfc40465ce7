"""
Models package for AMP Tracker.

This package exports all SQLAlchemy models.

Usage:
    from src.models import User, TemplateSet, DayRecord
"""

from src.models.base import Base
from src.models.day_record import (
    BlockNote,
    ChecklistCompletion,
    ChecklistItemCompletion,
    DayRecord,
    TimeBlockCompletion,
    TodoItem,
)
from src.models.template_set import TemplateSet
from src.models.time_block_override import TimeBlockOverride
from src.models.user import User

__all__ = [
    # Base
    "Base",
    # Accounts and content
    "User",
    "TemplateSet",
    # Day records
    "DayRecord",
    "TimeBlockCompletion",
    "BlockNote",
    "ChecklistCompletion",
    "ChecklistItemCompletion",
    "TodoItem",
    # Per-user customizations
    "TimeBlockOverride",
]
