"""
TimeBlockOverride Model for AMP Tracker.

Per-user customization of a template time block. An override can relabel a
block, move its display time or hide it; it applies to every day the user
views, on top of whichever template version is active for the user's role.

Data Classification: SENSITIVE (labels are user-authored)
"""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String

from src.models.base import Base, utc_now


class TimeBlockOverride(Base):
    """
    TimeBlockOverride model. At most one row per (user, block).

    Attributes:
        id: Primary key
        user_id: Foreign key to users.id
        block_id: Template block id the override applies to
        label: Replacement label (None keeps the template label)
        time: Replacement display time "HH:MM" (None keeps the template time)
        is_hidden: Whether the block is left out of the user's day view
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "time_block_overrides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    block_id = Column(String(100), nullable=False)
    label = Column(String(100), nullable=True)
    time = Column(String(5), nullable=True)
    is_hidden = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        Index("idx_time_block_override_user_block", "user_id", "block_id", unique=True),
    )

    def __repr__(self) -> str:
        return f"<TimeBlockOverride(user_id={self.user_id}, block_id={self.block_id}, hidden={self.is_hidden})>"


__all__ = ["TimeBlockOverride"]
