"""
SQLAlchemy Base for AMP Tracker.

This module provides the declarative base for all SQLAlchemy models.

Usage:
    from src.models.base import Base

    class MyModel(Base):
        __tablename__ = "my_table"
        ...
"""

from datetime import UTC, datetime

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base shared by all models."""


def utc_now() -> datetime:
    """Column default for timezone-aware timestamps."""
    return datetime.now(UTC)


__all__ = ["Base", "utc_now"]
