"""
Input limits for AMP Tracker.

Length caps applied to user-supplied text and identifiers before they
reach the day-record store.
"""

from __future__ import annotations

# Identifiers (checklist ids, item ids, block ids)
MAX_ID_LENGTH = 100

# Free text
MAX_NOTE_LENGTH = 200  # time-block notes
MAX_TODO_LENGTH = 500  # to-do item text
MAX_CHECKLIST_NOTES_LENGTH = 1000  # checklist-level notes
MAX_ITEM_TEXT_LENGTH = 500  # snapshot of a checklist item's text
MAX_BLOCK_LABEL_LENGTH = 100  # time-block label overrides

# Id allocation
TODO_ID_MAX_ATTEMPTS = 5

__all__ = [
    "MAX_ID_LENGTH",
    "MAX_NOTE_LENGTH",
    "MAX_TODO_LENGTH",
    "MAX_CHECKLIST_NOTES_LENGTH",
    "MAX_ITEM_TEXT_LENGTH",
    "MAX_BLOCK_LABEL_LENGTH",
    "TODO_ID_MAX_ATTEMPTS",
]
