"""
TemplateSet Model for AMP Tracker.

Stores versioned, role-scoped day templates. Definitions (time blocks,
checklists and their order arrays) are kept as JSON documents; the
``template_sets`` row carries the version metadata used for activation
and rollback.

Data Classification: PUBLIC (content authored by admins)
"""

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String

from src.models.base import Base, utc_now


class TemplateSet(Base):
    """
    TemplateSet model. At most one active row per role.

    Attributes:
        id: Primary key
        role: Template audience (public | admin)
        version: Semantic version "x.y.z", unique per role
        name: Human-readable name
        is_active: Whether this is the role's active version
        time_blocks: JSON list of {block_id, time, label, order}
        time_blocks_order: JSON list of block ids
        checklists: JSON list of {checklist_id, title, items, items_order, order}
        checklists_order: JSON list of checklist ids
        created_by: Admin user id that saved this version (None for seeds)
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "template_sets"

    id = Column(Integer, primary_key=True, autoincrement=True)
    role = Column(String(10), nullable=False)
    version = Column(String(20), nullable=False)
    name = Column(String(200), nullable=False)
    is_active = Column(Boolean, default=False, nullable=False)

    time_blocks = Column(JSON, default=list, nullable=False)
    time_blocks_order = Column(JSON, default=list, nullable=False)
    checklists = Column(JSON, default=list, nullable=False)
    checklists_order = Column(JSON, default=list, nullable=False)

    created_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        Index("idx_template_set_role_version", "role", "version", unique=True),
        Index("idx_template_set_role_active", "role", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<TemplateSet(id={self.id}, role={self.role}, version={self.version}, active={self.is_active})>"


__all__ = ["TemplateSet"]
