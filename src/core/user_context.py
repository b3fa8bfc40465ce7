"""
User Context for AMP Tracker.

The context passed to every completion and hydration operation. It carries
the identity of the day-record owner, the role used to resolve templates,
and the user's IANA timezone.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from src.lib.exceptions import ConfigurationError


class Role(StrEnum):
    """Template audience. Each role has at most one active template set."""

    PUBLIC = "public"
    ADMIN = "admin"


@dataclass(frozen=True)
class UserContext:
    """Context passed to every recorder and hydration call.

    Attributes:
        user_id: Owner of the day records being read or written
        role: Role used to select the active template set
        timezone: IANA timezone id; None when the user never configured one
        acting_user_id: Caller identity when an admin acts on behalf of the
            owner (None when the owner acts directly)
    """

    user_id: int
    role: Role = Role.PUBLIC
    timezone: str | None = None
    acting_user_id: int | None = None

    def require_timezone(self) -> str:
        """
        Return the configured timezone.

        Raises:
            ConfigurationError: If the user has no timezone configured
        """
        if not self.timezone:
            raise ConfigurationError("No timezone configured for user")
        return self.timezone

    @property
    def is_delegated(self) -> bool:
        return self.acting_user_id is not None and self.acting_user_id != self.user_id


__all__ = ["Role", "UserContext"]
