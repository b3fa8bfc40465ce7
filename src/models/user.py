"""
User Model for AMP Tracker.

Data Classification: INTERNAL (email is an account identifier)
"""

from sqlalchemy import Column, DateTime, Index, Integer, String
from sqlalchemy.orm import relationship

from src.models.base import Base, utc_now


class User(Base):
    """
    User model.

    Attributes:
        id: Primary key
        email: Login identifier (unique)
        role: Template audience (public | admin)
        timezone: IANA timezone (e.g., "America/New_York"); None until the
            user configures one
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    __tablename__ = "users"

    # Relationships
    day_records = relationship("DayRecord", back_populates="user", cascade="all, delete-orphan")

    # Columns
    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), unique=True, nullable=False)
    role = Column(String(10), default="public", nullable=False)
    timezone = Column(String(64), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False)

    __table_args__ = (
        Index("idx_user_role", "role"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, role={self.role})>"


__all__ = ["User"]
