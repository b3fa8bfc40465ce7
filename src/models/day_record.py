"""
DayRecord Models for AMP Tracker.

One DayRecord exists per (user, local calendar date). Completions are stored
as individual rows, each guarded by a unique constraint, so that completing
or retracting one item is a single INSERT or DELETE that never rewrites the
rest of the day:

    day_records                    (user_id, date) unique
    time_block_completions         (day_record_id, block_id) unique
    block_notes                    appended per block
    checklist_completions          (day_record_id, checklist_id) unique
    checklist_item_completions     (day_record_id, checklist_id, item_id) unique
    todo_items                     (day_record_id, item_id) unique

Data Classification: SENSITIVE (notes and to-do text are personal data)
"""

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from src.models.base import Base, utc_now


class DayRecord(Base):
    """
    DayRecord model: one user's completions for one calendar day.

    Attributes:
        id: Primary key
        user_id: Foreign key to users.id
        date: Local calendar date the record is for
        wake_time: Wake time "HH:MM" (local), if recorded
        user_timezone: IANA timezone captured when the record was created
        time_block_ids: Block ids seeded at creation (the 18 default slots)
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "day_records"

    # Relationships
    user = relationship("User", back_populates="day_records")
    time_block_completions = relationship(
        "TimeBlockCompletion", back_populates="day_record", cascade="all, delete-orphan"
    )
    block_notes = relationship(
        "BlockNote", back_populates="day_record", cascade="all, delete-orphan"
    )
    checklist_completions = relationship(
        "ChecklistCompletion", back_populates="day_record", cascade="all, delete-orphan"
    )
    item_completions = relationship(
        "ChecklistItemCompletion", back_populates="day_record", cascade="all, delete-orphan"
    )
    todo_items = relationship(
        "TodoItem", back_populates="day_record", cascade="all, delete-orphan"
    )

    # Columns
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    date = Column(Date, nullable=False)
    wake_time = Column(String(5), nullable=True)
    user_timezone = Column(String(64), nullable=True)
    time_block_ids = Column(JSON, default=list, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        Index("idx_day_record_user_date", "user_id", "date", unique=True),
    )

    def __repr__(self) -> str:
        return f"<DayRecord(id={self.id}, user_id={self.user_id}, date={self.date})>"


class TimeBlockCompletion(Base):
    """
    A completed time block. Presence means complete.

    Attributes:
        completed_at: Server-assigned completion instant
        block_index: Slot 0..17 the completion instant falls in (None for
            legacy rows awaiting backfill)
        timezone_offset_minutes: Offset east of UTC used for the assignment
        local_time_used: Local wall-clock time used for the assignment
    """

    __tablename__ = "time_block_completions"

    day_record = relationship("DayRecord", back_populates="time_block_completions")

    id = Column(Integer, primary_key=True, autoincrement=True)
    day_record_id = Column(
        Integer,
        ForeignKey("day_records.id", ondelete="CASCADE"),
        nullable=False,
    )
    block_id = Column(String(100), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=False)
    block_index = Column(Integer, nullable=True)
    timezone_offset_minutes = Column(Integer, nullable=True)
    local_time_used = Column(String(8), nullable=True)

    __table_args__ = (
        Index("idx_block_completion_day_block", "day_record_id", "block_id", unique=True),
    )


class BlockNote(Base):
    """A note attached to a time block. Notes exist independently of completion."""

    __tablename__ = "block_notes"

    day_record = relationship("DayRecord", back_populates="block_notes")

    id = Column(Integer, primary_key=True, autoincrement=True)
    day_record_id = Column(
        Integer,
        ForeignKey("day_records.id", ondelete="CASCADE"),
        nullable=False,
    )
    block_id = Column(String(100), nullable=False)
    text = Column(String(200), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (
        Index("idx_block_note_day_block", "day_record_id", "block_id"),
    )


class ChecklistCompletion(Base):
    """
    Checklist-level completion state.

    Attributes:
        completed_at: Time of the most recent item completion
        notes: Free-text notes for the checklist on this day
    """

    __tablename__ = "checklist_completions"

    day_record = relationship("DayRecord", back_populates="checklist_completions")

    id = Column(Integer, primary_key=True, autoincrement=True)
    day_record_id = Column(
        Integer,
        ForeignKey("day_records.id", ondelete="CASCADE"),
        nullable=False,
    )
    checklist_id = Column(String(100), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_checklist_completion_day_checklist", "day_record_id", "checklist_id", unique=True),
    )


class ChecklistItemCompletion(Base):
    """
    A completed checklist item with its slot assignment audit trail.

    Attributes:
        text: Snapshot of the item text at completion time
        completed_at: Server-assigned completion instant
        block_index: Slot 0..17 the completion was assigned to (None for
            legacy rows awaiting backfill)
        timezone_offset_minutes: Offset east of UTC used for the assignment
        local_time_used: Local wall-clock time used for the assignment
    """

    __tablename__ = "checklist_item_completions"

    day_record = relationship("DayRecord", back_populates="item_completions")

    id = Column(Integer, primary_key=True, autoincrement=True)
    day_record_id = Column(
        Integer,
        ForeignKey("day_records.id", ondelete="CASCADE"),
        nullable=False,
    )
    checklist_id = Column(String(100), nullable=False)
    item_id = Column(String(100), nullable=False)
    text = Column(String(500), nullable=False, default="")
    completed_at = Column(DateTime(timezone=True), nullable=False)
    block_index = Column(Integer, nullable=True)
    timezone_offset_minutes = Column(Integer, nullable=True)
    local_time_used = Column(String(8), nullable=True)

    __table_args__ = (
        Index(
            "idx_item_completion_day_checklist_item",
            "day_record_id",
            "checklist_id",
            "item_id",
            unique=True,
        ),
    )


class TodoItem(Base):
    """A user-authored to-do item for one day."""

    __tablename__ = "todo_items"

    day_record = relationship("DayRecord", back_populates="todo_items")

    id = Column(Integer, primary_key=True, autoincrement=True)
    day_record_id = Column(
        Integer,
        ForeignKey("day_records.id", ondelete="CASCADE"),
        nullable=False,
    )
    item_id = Column(String(100), nullable=False)
    text = Column(String(500), nullable=False)
    completed = Column(Boolean, default=False, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    due_date = Column(Date, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (
        Index("idx_todo_item_day_item", "day_record_id", "item_id", unique=True),
    )


__all__ = [
    "DayRecord",
    "TimeBlockCompletion",
    "BlockNote",
    "ChecklistCompletion",
    "ChecklistItemCompletion",
    "TodoItem",
]
