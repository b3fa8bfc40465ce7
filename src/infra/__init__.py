"""
Infrastructure module for AMP Tracker.

This module provides production infrastructure components:
- Database engine and session factory
"""

from src.infra.database import (
    configure_database,
    get_engine,
    get_session_factory,
    init_database,
    session_scope,
)

__all__ = [
    "configure_database",
    "get_engine",
    "get_session_factory",
    "init_database",
    "session_scope",
]
