"""
Core domain logic for AMP Tracker.

Exports:
    - assign_time_block: Completion instant -> one of 18 daily slots
    - generate_time_blocks: The 18 canonical slots
    - TemplateSetData and friends: Role-scoped template definitions
    - UserContext, Role: Caller context for every operation
    - Clock, SystemClock, FixedClock: Injected time source
"""

from .clock import Clock, FixedClock, SystemClock
from .templates import (
    ChecklistDefinition,
    ChecklistItemDefinition,
    TemplateSetData,
    TimeBlockDefinition,
    default_template,
    validate_template,
)
from .timeblocks import (
    CompletionRecord,
    TimeBlockSlot,
    WakeSettings,
    assign_time_block,
    generate_time_blocks,
)
from .user_context import Role, UserContext

__all__ = [
    "ChecklistDefinition",
    "ChecklistItemDefinition",
    "Clock",
    "CompletionRecord",
    "FixedClock",
    "Role",
    "SystemClock",
    "TemplateSetData",
    "TimeBlockDefinition",
    "TimeBlockSlot",
    "UserContext",
    "WakeSettings",
    "assign_time_block",
    "default_template",
    "generate_time_blocks",
    "validate_template",
]
